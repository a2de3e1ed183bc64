from typing import List, Sequence

import pytest

from app.core.exceptions import ProviderError
from app.services.providers.base import AssessmentContext, BoundingBox, RenderedPage
from app.services.providers.decoding import (
    PayloadDecodeError,
    decode_answer_v1,
    decode_header_v1,
    decode_question_v1,
    decode_question_v2,
    load_json_payload,
)
from app.services.providers.vision import VisionAdapter
from app.utils.enums import ProviderFailureKind
from tests.fakes import make_pages

CONTEXT = AssessmentContext(title="Mid-term Biology")


class ScriptedVisionAdapter(VisionAdapter):
    """Vision adapter whose completions come from a list of canned responses."""

    name = "scripted"

    def __init__(self, responses: List[str], question_format: str = "v1"):
        super().__init__(model="test-model", priority=1)
        self.responses = list(responses)
        self.question_format = question_format
        self.prompts: List[str] = []

    async def _complete(self, prompt: str, pages: Sequence[RenderedPage]) -> str:
        self.prompts.append(prompt)
        return self.responses.pop(0)


def test_load_payload_strips_code_fences():
    text = 'Here you go:\n```json\n[["1", "Define a cell", 2, []]]\n```'
    assert load_json_payload(text) == [["1", "Define a cell", 2, []]]


def test_load_payload_unwraps_object():
    assert load_json_payload('{"questions": [[1, 2]]}') == [[1, 2]]


def test_load_payload_finds_array_in_prose():
    assert load_json_payload('Result: [[1, 3, "ok", 1]] done') == [[1, 3, "ok", 1]]


@pytest.mark.parametrize("text", ["", "   ", "no json here", '{"answer": 3}'])
def test_load_payload_rejects_unusable_text(text):
    with pytest.raises(PayloadDecodeError):
        load_json_payload(text)


def test_question_v1_defaults():
    candidate = decode_question_v1(["2a", "Name two organelles", None, None], page_number=3)

    assert candidate.question_identifier == "2a"
    assert candidate.max_marks == 1.0
    assert candidate.page_number == 3
    assert candidate.topics == []


def test_question_v1_topics_and_blank_text():
    candidate = decode_question_v1(["1", "Explain osmosis", "4", [["Cells", 60], ["Water", 40]]], page_number=1)
    assert candidate.max_marks == 4.0
    assert [(t.topic, t.weight) for t in candidate.topics] == [("Cells", 60.0), ("Water", 40.0)]

    assert decode_question_v1(["1", "   ", 2, []], page_number=1) is None
    assert decode_question_v1("garbage", page_number=1) is None


def test_question_v2_reads_page_from_item():
    candidate = decode_question_v2(["3", "Draw a cell", 5, 2, [["Cells", 100]]], page_number=1)
    assert candidate.page_number == 2

    fallback = decode_question_v2(["3", "Draw a cell", 5, "x", []], page_number=4)
    assert fallback.page_number == 4


def test_question_object_form_keeps_bbox():
    candidate = decode_question_v1(
        {"question_text": "Label the diagram", "marks": 3, "bbox": {"x1": 1, "y1": 2, "x2": 3, "y2": 4}},
        page_number=1,
    )
    assert candidate.bbox == BoundingBox(1, 2, 3, 4)
    assert candidate.max_marks == 3.0


def test_answer_decoder_clamps_negative_marks_and_defaults_page():
    answer = decode_answer_v1([2, -3, "Wrong unit", None])

    assert answer.question_number == 2
    assert answer.marks_obtained == 0.0
    assert answer.page_number == 1
    assert decode_answer_v1(["not a number", 3]) is None


def test_header_decoder_unwraps_nesting_and_defaults_confidence():
    header = decode_header_v1([[1, "Ada Obi", "S-001", "12", "JSS1"]], page_number=1)

    assert header.student_name == "Ada Obi"
    assert header.student_identifier == "S-001"
    assert header.roll_number == "12"
    assert header.class_name == "JSS1"
    assert header.confidence == 1.0


def test_header_decoder_treats_placeholders_as_missing():
    header = decode_header_v1([2, "Unknown", None, None, None, 0.4], page_number=2)

    assert header.student_name is None
    assert header.has_header is False
    assert header.confidence == 0.0


def test_header_decoder_clamps_confidence():
    header = decode_header_v1([1, "Ben Ade", "S-002", None, None, 7], page_number=1)
    assert header.confidence == 1.0


@pytest.mark.asyncio
async def test_vision_extract_skips_unreadable_pages_and_fills_bbox():
    adapter = ScriptedVisionAdapter(
        [
            '[["1", "Define a cell", 2, [["Cells", 100]]]]',
            "Sorry, I cannot read this page.",
            '[["2", "What is diffusion?", 3, []], ["", "", 1, []]]',
        ]
    )

    questions = await adapter.extract(make_pages(3), CONTEXT)

    assert [q.question_identifier for q in questions] == ["1", "2"]
    assert [q.page_number for q in questions] == [1, 3]
    assert questions[0].bbox == BoundingBox.full_page(800, 1100)
    assert len(adapter.prompts) == 3


@pytest.mark.asyncio
async def test_vision_grade_malformed_output_is_transient():
    adapter = ScriptedVisionAdapter(["I think the student did well."])

    with pytest.raises(ProviderError) as info:
        await adapter.grade(make_pages(1), "grade")

    assert info.value.kind == ProviderFailureKind.transient
    assert info.value.provider == "scripted"


@pytest.mark.asyncio
async def test_vision_header_empty_array_means_no_header():
    adapter = ScriptedVisionAdapter(["[]"])

    header = await adapter.read_header(make_pages(1)[0], CONTEXT)

    assert header.page_number == 1
    assert header.has_header is False
