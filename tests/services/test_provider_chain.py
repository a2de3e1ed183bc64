import pytest

from app.core.exceptions import AllProvidersFailedError, ProviderError
from app.services.providers.base import AssessmentContext, QuestionCandidate
from app.services.providers.chain import ProviderChain
from app.utils.enums import ProviderFailureKind
from tests.fakes import FakeAdapter, make_pages

pytestmark = pytest.mark.asyncio

CONTEXT = AssessmentContext(title="Mid-term Biology", class_name="JSS1", subject="Biology")


def _questions(count):
    return [QuestionCandidate(question_text=f"Q{n}") for n in range(1, count + 1)]


async def test_first_success_wins_and_later_providers_are_not_called():
    first = FakeAdapter("p1", 1, error=ProviderError.critical("quota exhausted"))
    second = FakeAdapter("p2", 2, questions=_questions(5))
    third = FakeAdapter("p3", 3, questions=_questions(2))
    chain = ProviderChain([first, second, third])

    result = await chain.extract_questions(make_pages(2), CONTEXT)

    assert result.provider == "p2"
    assert len(result.value) == 5
    assert third.calls == []
    assert result.failed_providers == ["p1"]
    assert result.attempts[0].error.kind == ProviderFailureKind.critical
    assert result.attempts[0].error.provider == "p1"


async def test_adapters_run_in_priority_order():
    late = FakeAdapter("late", 5, questions=_questions(1))
    early = FakeAdapter("early", 1, questions=_questions(1))
    chain = ProviderChain([late, early])

    assert [a.name for a in chain.adapters] == ["early", "late"]
    result = await chain.extract_questions(make_pages(1), CONTEXT)
    assert result.provider == "early"
    assert late.calls == []


async def test_disabled_adapters_are_skipped():
    off = FakeAdapter("off", 1, questions=_questions(1), enabled=False)
    on = FakeAdapter("on", 2, questions=_questions(1))

    result = await ProviderChain([off, on]).extract_questions(make_pages(1), CONTEXT)

    assert result.provider == "on"
    assert off.calls == []


async def test_empty_result_advances_to_next_provider():
    empty = FakeAdapter("empty", 1)
    full = FakeAdapter("full", 2, questions=_questions(3))

    result = await ProviderChain([empty, full]).extract_questions(make_pages(1), CONTEXT)

    assert result.provider == "full"
    assert result.attempts[0].empty is True
    assert result.attempts[0].error is None


async def test_all_failed_reports_last_error():
    first = FakeAdapter("p1", 1, error=ProviderError.critical("bad key"))
    second = FakeAdapter("p2", 2, error=ProviderError.transient("garbled output"))
    chain = ProviderChain([first, second])

    with pytest.raises(AllProvidersFailedError) as info:
        await chain.grade_answers(make_pages(1), "grade this")

    error = info.value
    assert error.last_error.provider == "p2"
    assert "garbled output" in error.message
    assert [a.provider for a in error.attempts] == ["p1", "p2"]
    assert len(first.calls) == 1
    assert len(second.calls) == 1


async def test_all_empty_is_a_failure_without_last_error():
    chain = ProviderChain([FakeAdapter("p1", 1), FakeAdapter("p2", 2)])

    with pytest.raises(AllProvidersFailedError) as info:
        await chain.extract_questions(make_pages(1), CONTEXT)

    assert info.value.last_error is None
    assert "no results" in info.value.message


async def test_no_enabled_providers():
    with pytest.raises(AllProvidersFailedError) as info:
        await ProviderChain([]).extract_questions(make_pages(1), CONTEXT)
    assert "No providers" in info.value.message


async def test_timeout_counts_as_transient_failure():
    slow = FakeAdapter("slow", 1, questions=_questions(1), delay=1)
    fast = FakeAdapter("fast", 2, questions=_questions(2))
    chain = ProviderChain([slow, fast], timeout_seconds=0.05)

    result = await chain.extract_questions(make_pages(1), CONTEXT)

    assert result.provider == "fast"
    assert result.attempts[0].error.kind == ProviderFailureKind.transient


async def test_unclassified_exception_is_treated_as_transient():
    broken = FakeAdapter("broken", 1, error=KeyError("choices"))
    backup = FakeAdapter("backup", 2, questions=_questions(1))

    result = await ProviderChain([broken, backup]).extract_questions(make_pages(1), CONTEXT)

    assert result.provider == "backup"
    failure = result.attempts[0].error
    assert failure.kind == ProviderFailureKind.transient
    assert "KeyError" in failure.message


async def test_empty_header_is_a_valid_answer():
    reader = FakeAdapter("reader", 1)
    backup = FakeAdapter("backup", 2)

    result = await ProviderChain([reader, backup]).read_header(make_pages(1)[0], CONTEXT)

    assert result.provider == "reader"
    assert result.value.has_header is False
    assert backup.calls == []
