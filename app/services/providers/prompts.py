"""Prompt builders shared by the vision adapters."""
from __future__ import annotations

from typing import Iterable, Optional

from app.services.providers.base import AssessmentContext


def _context_line(context: AssessmentContext) -> str:
    parts = [f'Assessment: "{context.title}"']
    if context.subject:
        parts.append(f"Subject: {context.subject}")
    if context.class_name:
        parts.append(f"Class: {context.class_name}")
    return " | ".join(parts)


def question_extraction_prompt(context: AssessmentContext, page_number: int, *, batched: bool = False) -> str:
    if batched:
        shape = '[question_identifier, question_text, marks, page_number, [[topic, weight], ...]]'
    else:
        shape = '[question_identifier, question_text, marks, [[topic, weight], ...]]'
    return f"""You are reading page {page_number} of a question paper.
{_context_line(context)}

Extract every question on this page. Return ONLY a JSON array of tuples:
{shape}

Rules:
- question_identifier is the label printed on the paper (e.g. "1", "2(a)", "Q3"), or null.
- question_text is the full question text including sub-parts and options.
- marks is the number of marks shown for the question; use 1 when none is printed.
- topics lists the syllabus topics the question tests, with a weight out of 100.
- Return [] if the page holds no questions (cover pages, instructions, blank pages).
No markdown, no commentary."""


def header_prompt(context: AssessmentContext, page_number: int) -> str:
    return f"""You are reading page {page_number} of a scanned answer sheet bundle that may contain
several students' answer sheets one after another.
{_context_line(context)}

If this page carries a student header (name, ID/admission number, roll number, class),
return ONLY a JSON array with one tuple:
[[page_number, student_name, student_identifier, roll_number, class, confidence]]

confidence is a number between 0 and 1 for how legible the header is.
If the page has NO student header (it continues the previous student's answers), return [].
No markdown, no commentary."""


def grading_prompt(
    questions: Iterable[dict],
    context: AssessmentContext,
    student_name: Optional[str] = None,
) -> str:
    lines = []
    for q in questions:
        topics = ", ".join(t.get("topic", "") for t in (q.get("topics") or []))
        lines.append(
            f"Q{q['question_number']} ({q.get('question_identifier') or '-'}) "
            f"[max {q['max_marks']} marks]{f' topics: {topics}' if topics else ''}\n{q['question_text']}"
        )
    questions_block = "\n\n".join(lines)
    student = f"Student: {student_name}\n" if student_name else ""
    return f"""You are an experienced examiner grading a handwritten answer sheet.
{_context_line(context)}
{student}
Questions (numbered by question_number):
{questions_block}

For each question, find the student's answer in the attached pages and award marks
between 0 and the question's max marks. Return ONLY a JSON array of tuples:
[question_number, marks_obtained, explanation, page_number]

explanation briefly justifies the marks. page_number is the page where the answer appears.
Include every question; award 0 for unanswered questions.
No markdown, no commentary."""
