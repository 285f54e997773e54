import os
import json
import logging
from groq import Groq

from stride.schemas import Section

logger = logging.getLogger(__name__)

MODEL = "llama-3.3-70b-versatile"
FALLBACK_MESSAGE = "Unable to generate AI analysis at this time."
REPORTED_SECTIONS = (Section.EINSTEIN_G11, Section.GALILEI_G12)


def get_groq_client(api_key=None):
    api_key = api_key or os.environ.get("GROQ_API_KEY")
    if not api_key: return None
    return Groq(api_key=api_key)


def build_usage_summary(assignments, submissions):
    """Assignment and submission counts, overall and per section.

    A submission counts towards the section of the assignment it answers.
    """
    section_of = {a.id: a.section for a in assignments}
    by_section = {}
    for section in REPORTED_SECTIONS:
        by_section[section.value] = {
            "assignments": len([a for a in assignments if a.section is section]),
            "submissions": len([s for s in submissions if section_of.get(s.assignment_id) is section]),
        }
    return {
        "totalAssignments": len(assignments),
        "totalSubmissions": len(submissions),
        "bySection": by_section,
    }


def analyze_research_data(assignments, submissions, client=None):
    """Ask the model for a short executive summary of platform usage.

    Never raises: without a client, or on any API error, returns FALLBACK_MESSAGE.
    """
    client = client or get_groq_client()
    if not client: return FALLBACK_MESSAGE

    summary = build_usage_summary(assignments, submissions)
    prompt = f"""
    As the Mustang Stride research data analyst, analyze this assignment platform usage data:
    {json.dumps(summary, indent=2)}

    Provide a brief (max 100 words) executive summary of the student participation across the two sections (Einstein vs Galilei).
    Highlight which group is taking the lead in their academic stride.
    """
    try:
        completion = client.chat.completions.create(
            messages=[{"role": "user", "content": prompt}],
            model=MODEL,
        )
        return completion.choices[0].message.content
    except Exception:
        logger.exception("AI analysis failed")
        return FALLBACK_MESSAGE
