# chart_analyzer.py
"""AI-based chart analysis using Gemini vision"""

import json
import logging
import google.generativeai as genai
from typing import Optional, Dict, Any

from models import AnalysisResult
import config

logger = logging.getLogger(__name__)


SYSTEM_PROMPT = """
You are an expert Forex and Crypto technical analyst.
Your job is to analyze trading charts provided as images and extract a valid trade setup.

**INSTRUCTIONS:**
1. Identify the main trend or pattern (e.g., Uptrend, Downtrend, Range, Breakout).
2. Look for any ICT concepts if present (Order Blocks, FVG, Liquidity), but standard Price Action (Support/Resistance) is also acceptable.
3. Determine a logical Entry, Stop Loss (SL), and Take Profit (TP) levels based on the visual data.

**CRITICAL OVERRIDE RULES:**
- **ALWAYS return a valid JSON response**, even if the chart is unclear, zoomed in, or messy.
- **Infer** the pair and timeframe if they are not explicitly visible.
- **NEVER** return "isSetupValid": false unless the image is clearly NOT a chart (e.g., a selfie, a cat, a blank screen).
- If the image contains candlesticks or price lines, **YOU MUST GENERATE A SIGNAL**.
- **TIGHT STOP LOSS**: Place SL at the nearest invalidation point (e.g., recent swing low/high). If timeframe is small (5m/15m), use SCALPING tight stops.
- **STRATEGY NAME**: You must populate the "strategy" field (e.g., "Bullish Order Block", "Liquidity Sweep", "Trendline Break").
- **RISK TO REWARD**: Aim for 1:2 RR minimum.

You MUST return the response in strict JSON format.
The JSON schema is:
{
  "pair": "string (e.g. XAUUSD, BTCUSD - infer if missing)",
  "timeframe": "string (e.g. 5m, 15m, 1h - default to 'Current')",
  "direction": "BUY" or "SELL",
  "strategy": "string (e.g. 'Order Block', 'Trend Follow', 'Breakout')",
  "entry": number,
  "sl": number,
  "tp1": number,
  "tp2": number,
  "reasoning": "string (Concise explanation of the setup)",
  "isSetupValid": boolean,
  "marketStructure": ["string", "string"]
}
"""

DEFAULT_STRATEGY = "Price Action"


def _optional_float(value: Any) -> Optional[float]:
    if value is None or value == "":
        return None
    return float(value)


def _setup_flag(value: Any) -> bool:
    # Only an explicit true marks a setup valid
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return False


def strip_code_fences(text: str) -> str:
    """Remove markdown code block markers around a model response"""
    response_text = text.strip()
    if response_text.startswith('```json'):
        response_text = response_text[7:]
    if response_text.startswith('```'):
        response_text = response_text[3:]
    if response_text.endswith('```'):
        response_text = response_text[:-3]
    return response_text.strip()


def analysis_from_dict(data: Dict[str, Any]) -> AnalysisResult:
    """
    Build an AnalysisResult from the model's JSON object

    Raises:
        ValueError: A required field is missing or not numeric
    """
    required_fields = ['pair', 'direction', 'entry', 'sl']
    for field_name in required_fields:
        if field_name not in data:
            raise ValueError(f"Missing required field '{field_name}' in AI response")

    market_structure = data.get('marketStructure') or []
    if not isinstance(market_structure, list):
        market_structure = [str(market_structure)]

    return AnalysisResult(
        pair=str(data['pair']).upper(),
        timeframe=str(data.get('timeframe') or 'Current'),
        direction=str(data['direction']),
        strategy=str(data.get('strategy') or DEFAULT_STRATEGY),
        entry=float(data['entry']),
        stop_loss=float(data['sl']),
        take_profit1=_optional_float(data.get('tp1')),
        take_profit2=_optional_float(data.get('tp2')),
        reasoning=str(data.get('reasoning') or ''),
        is_setup_valid=_setup_flag(data.get('isSetupValid', True)),
        market_structure=[str(item) for item in market_structure],
    )


def parse_analysis_response(text: str) -> AnalysisResult:
    """
    Parse the raw model response into an AnalysisResult

    Raises:
        ValueError: The response is empty, not JSON, or misses required fields
    """
    if not text:
        raise ValueError("No response received from AI Model.")

    response_text = strip_code_fences(text)
    try:
        data = json.loads(response_text)
    except json.JSONDecodeError as e:
        raise ValueError(f"Failed to parse AI response. Raw text: {response_text[:50]}...") from e

    if not isinstance(data, dict):
        raise ValueError("AI response is not a JSON object")
    return analysis_from_dict(data)


class ChartAnalyzer:
    """Analyze chart screenshots using Gemini AI"""

    def __init__(self, api_key: str = config.GEMINI_API_KEY, model_name: str = config.GEMINI_MODEL):
        """
        Initialize Gemini chart analyzer

        Args:
            api_key: Google AI API key for Gemini
            model_name: Vision-capable Gemini model
        """
        self.configured = bool(api_key) and api_key != "your_gemini_api_key_here"
        self.model = None
        if self.configured:
            genai.configure(api_key=api_key)
            self.model = genai.GenerativeModel(
                model_name,
                generation_config=genai.GenerationConfig(
                    response_mime_type="application/json",
                    temperature=config.GEMINI_TEMPERATURE,
                    max_output_tokens=config.GEMINI_MAX_OUTPUT_TOKENS,
                ),
            )
        else:
            logger.warning("Gemini API key not configured - chart analysis disabled")

    async def analyze(self, image_bytes: bytes, mime_type: str = "image/png") -> AnalysisResult:
        """
        Analyze a chart image

        Never raises: any failure is returned as an invalid result whose
        reasoning explains what went wrong.

        Args:
            image_bytes: Raw image content
            mime_type: Image MIME type

        Returns:
            The analysis result
        """
        if not self.configured:
            return AnalysisResult.failed(
                "Configuration Error: API Key is missing. Set GEMINI_API_KEY in the environment.")

        try:
            logger.debug(f"Calling Gemini AI for chart analysis ({len(image_bytes)} bytes, {mime_type})")
            response = await self.model.generate_content_async([
                SYSTEM_PROMPT,
                {"mime_type": mime_type, "data": image_bytes},
            ])
            analysis = parse_analysis_response(response.text)

            logger.info(f"AI analysis - Pair: {analysis.pair}, Direction: {analysis.direction}, "
                        f"Entry: {analysis.entry}, SL: {analysis.stop_loss}, "
                        f"TPs: {analysis.take_profit1}/{analysis.take_profit2}, Valid: {analysis.is_setup_valid}")
            return analysis

        except ValueError as e:
            logger.error(f"Invalid AI response: {e}")
            return AnalysisResult.failed(str(e))
        except Exception as e:
            logger.error(f"Gemini Analysis Error: {e}", exc_info=True)
            return AnalysisResult.failed(str(e) or "Unknown error occurred during analysis.")
