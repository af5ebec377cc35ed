"""Free-text health data analysis through the completion client."""
import logging
from typing import Optional

from labinsight.services.gemini import CompletionClient
from labinsight.utils.exceptions import EmptyInputError, ExternalServiceError

logger = logging.getLogger("labinsight")

ANALYSIS_MAX_TOKENS = 400
ANALYSIS_TEMPERATURE = 0.7


def build_analysis_prompt(health_data: str) -> str:
    return (
        "You are an expert health data analyst. Analyze this health data and provide helpful insights.\n\n"
        f"Health Data to Analyze:\n{health_data.strip()}\n\n"
        "Please provide a comprehensive but concise analysis including:\n\n"
        "1. **Key Findings**: What stands out in these health metrics?\n"
        "2. **Health Assessment**: Overall health picture based on these values\n"
        "3. **Areas of Concern**: Any metrics that need attention (if any)\n"
        "4. **Recommendations**: Specific, actionable health advice\n"
        "5. **Next Steps**: What to discuss with healthcare provider\n\n"
        "Important Guidelines:\n"
        "- Be helpful and informative but not diagnostic\n"
        "- Mention normal ranges where relevant\n"
        "- Focus on lifestyle and wellness advice\n"
        "- Keep response under 300 words\n"
        "- Always recommend consulting healthcare professionals for medical decisions\n\n"
        "Analysis:"
    )


async def analyze_health_text(health_data: Optional[str], llm_client: Optional[CompletionClient]) -> str:
    """Return the model's prose analysis of ``health_data``.

    There is no fallback text: a missing client or an empty reply raises
    ExternalServiceError.
    """
    if not health_data or not health_data.strip():
        raise EmptyInputError("No health data provided")
    if llm_client is None:
        raise ExternalServiceError("Text analysis is not configured", {"reason": "no completion client"})
    reply = await llm_client.complete(
        build_analysis_prompt(health_data), max_tokens=ANALYSIS_MAX_TOKENS, temperature=ANALYSIS_TEMPERATURE
    )
    reply = (reply or "").strip()
    if not reply:
        raise ExternalServiceError("Empty response from AI model")
    logger.info({"function": "analyze_health_text", "input_chars": len(health_data), "output_chars": len(reply)})
    return reply
