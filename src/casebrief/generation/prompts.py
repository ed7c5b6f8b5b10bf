"""Prompt builders for the generation stages."""

from __future__ import annotations

import json
from datetime import date

from casebrief.models.context import CompactGuidance
from casebrief.models.pipeline import CaseDetails, FirmProfile

FACT_EXTRACTION_SYSTEM = """\
You are a data extraction specialist. Extract every relevant fact from the case \
analysis and the supporting evidence.

Extract only facts that are supported by the material. Do not invent facts, \
exaggerate timelines or amounts, or add persuasive language. If the analysis \
describes a weakness in the case, record it.

Organise the fact sheet under these headings, using bullet points:
1. Timeline facts (exact dates, durations, gaps)
2. Financial facts (amounts, hours, rates, calculations)
3. Breaches of published standards, with their citations
4. Communication facts (what was sent, when, by whom, how)
5. System failures (contradictions, lost correspondence, handoffs)
6. Impact facts (distress, wasted time, mounting costs)
7. Precedent examples (structure, phrasing and outcomes of similar cases)
8. Escalation facts (earlier responses, their dates and references, what they \
failed to offer)

Include every specific detail: dates, amounts, counts, percentages. Be concise \
and do not repeat information."""

STRUCTURING_SYSTEM = """\
You are organising a fact sheet into a formal complaint letter.

Only include breaches clearly supported by the facts; three strong points are \
better than seven weak ones. If the fact sheet contains precedent examples, \
follow their structure.

Use this structure, with every section heading in bold using **double asterisks**:
1. Letterhead and date
2. Reference line
3. Salutation
4. Subject line in bold: **FORMAL COMPLAINT: <brief description>**
5. Opening paragraph
6. **Chronological Timeline of Events** with each date in bold
7. **Breaches of Standards** with each numbered breach header in bold
8. **Impact on Our Client**
9. **Professional Costs**
10. **Resolution Required** as a numbered list
11. **Response Deadline**
12. Closing with the preparer's real name, title and contact details

Write in the organisational voice ("We", "Our firm"), never first-person \
singular. Do not add tone or rhetoric yet; present the facts objectively."""

TONE_FINISHING_SYSTEM = """\
You are transforming a structured complaint letter into measured, professional \
language appropriate to the severity of the case.

Rules:
- Organisational voice only ("We", "Our firm"); never first-person singular.
- No sarcasm, personal attacks, rhetorical questions or threats beyond the \
stated escalation path.
- Express firmness through specific facts, numbers and citations.
- Preserve every bold marker (text wrapped in **double asterisks**) exactly as \
written: section headings, dates, breach headers and the subject line must \
survive unchanged, character for character.
- Keep the preparer's name, title and contact details exactly as given.

Return only the finished letter."""

DIRECT_GENERATION_SYSTEM = """\
You are drafting a formal complaint letter from a professional practice on \
behalf of its client. Use only the facts in the analysis and evidence, write in \
the organisational voice ("We", "Our firm"), and put every section heading in \
bold using **double asterisks**. Return only the finished letter."""

ANALYSIS_SYSTEM = """\
You are reviewing the evidence for a potential complaint. Identify the \
timeline, the published standards that may have been breached, the strength of \
each point, the impact on the client and the recommended next step. Be candid \
about weaknesses. Respond with a concise structured analysis."""


def _format_analysis(analysis: dict | str) -> str:
    if isinstance(analysis, str):
        return analysis
    return json.dumps(analysis, indent=2, default=str)


def fact_extraction_prompt(
    case: CaseDetails,
    evidence: str = "",
    guidance: CompactGuidance | None = None,
) -> str:
    parts = [
        "Extract all facts from this case analysis:",
        f"ANALYSIS:\n{_format_analysis(case.analysis)}",
        f"CASE REFERENCE: {case.case_reference}",
    ]
    if case.department:
        parts.append(f"DEPARTMENT: {case.department}")
    if evidence:
        parts.append(f"EVIDENCE:\n{evidence}")
    if guidance is not None and not guidance.is_empty:
        parts.append(f"GUIDANCE AND PRECEDENTS:\n{guidance.model_dump_json(indent=2)}")
    parts.append("Extract a complete fact sheet now (include any precedent examples found):")
    return "\n\n".join(parts)


def _closing_block(firm: FirmProfile) -> str:
    lines = [
        firm.preparer_name or "[Name]",
        firm.preparer_title or "[Title]",
        firm.display_name or "[Firm Name]",
    ]
    if firm.email:
        lines.append(f"Email: {firm.email}")
    if firm.phone:
        lines.append(f"Tel: {firm.phone}")
    return "\n".join(lines)


def structuring_prompt(
    fact_sheet: str,
    firm: FirmProfile,
    additional_context: str | None = None,
    today: date | None = None,
) -> str:
    today = today or date.today()
    letterhead = firm.letterhead or firm.display_name or "[Firm Name]\n[Address]\n[Contact details]"
    parts = [
        "Organise these facts into the professional complaint letter structure:",
        fact_sheet,
        f"LETTERHEAD:\n{letterhead}",
        f"DATE: {today.day} {today:%B %Y}",
    ]
    if firm.billing_rate is not None:
        parts.append(f"Charge-out rate: {firm.billing_rate:g} per hour")
    parts.append(f"CLOSING (use exactly):\n{_closing_block(firm)}")
    if additional_context:
        parts.append(
            "ADDITIONAL INSTRUCTIONS FROM USER:\n"
            f"{additional_context}\n\n"
            "Incorporate these instructions into the letter where appropriate."
        )
    return "\n\n".join(parts)


def tone_finishing_prompt(structured_draft: str, firm: FirmProfile) -> str:
    preparer = ", ".join(p for p in (firm.preparer_name, firm.preparer_title) if p)
    parts = [
        "Add professional, measured tone to this structured letter:",
        structured_draft,
    ]
    if preparer:
        parts.append(f"The letter is signed by {preparer}; keep these details unchanged.")
    parts.append("Keep every **bold** marker exactly as written.")
    return "\n\n".join(parts)


def direct_generation_prompt(
    case: CaseDetails,
    firm: FirmProfile,
    evidence: str = "",
    additional_context: str | None = None,
) -> str:
    parts = [
        "Write the complaint letter for this case.",
        f"ANALYSIS:\n{_format_analysis(case.analysis)}",
        f"CASE REFERENCE: {case.case_reference}",
    ]
    if case.department:
        parts.append(f"DEPARTMENT: {case.department}")
    if evidence:
        parts.append(f"EVIDENCE:\n{evidence}")
    parts.append(f"CLOSING (use exactly):\n{_closing_block(firm)}")
    if additional_context:
        parts.append(f"ADDITIONAL INSTRUCTIONS FROM USER:\n{additional_context}")
    return "\n\n".join(parts)


def analysis_prompt(evidence: str) -> str:
    return f"Analyse the following evidence:\n\n{evidence}"
