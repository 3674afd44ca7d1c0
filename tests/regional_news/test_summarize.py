import json
from datetime import datetime, timedelta, timezone
from typing import List

import pytest

from src.regional_news.canonical import content_hash, count_words
from src.regional_news.errors import ValidationError
from src.regional_news.stores import MemoryKeyValueStore
from src.regional_news.summarize import (
    EMPTY_SOURCE_SUMMARY,
    FRESHNESS_TTL_DEFAULT,
    FRESHNESS_TTL_RECENT,
    ExtractiveSummarizer,
    GenerativeSummarizer,
    build_fallback_summary,
    build_short_description,
    check_numeric_fidelity,
    enforce_length_band,
    ensure_terminal_punctuation,
    freshness_ttl,
    normalize_model_output,
)

NOW = datetime(2024, 5, 2, 12, 0, tzinfo=timezone.utc)
SENTENCE = "The county fiscal court reviewed the road plan again this week."
NUMBERS = "The plan costs 4.2 million dollars and raises the tax rate by 12 percent."
SOURCE = "\n\n".join(
    [
        " ".join([NUMBERS] + [SENTENCE] * 3),
        " ".join([SENTENCE] * 4),
        " ".join([SENTENCE] * 4),
    ]
)
GOOD_SUMMARY = (
    "The county fiscal court reviewed a road plan that costs 4.2 million dollars. "
    "The plan raises the tax rate by 12 percent. "
    "Magistrates reviewed the plan again this week and discussed it with residents at length."
)


class ScriptedGenerator:
    def __init__(self, responses: List[object]) -> None:
        self.responses = list(responses)
        self.prompts: List[str] = []

    def generate(self, system_prompt: str, user_prompt: str, max_new_tokens: int = 256) -> str:
        self.prompts.append(user_prompt)
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return str(response)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_fallback_is_bounded_and_ends_on_a_sentence() -> None:
    for text in (SOURCE, SENTENCE * 3, " ".join([SENTENCE] * 60)):
        summary = build_fallback_summary(text)
        total = count_words(text)
        target = max(30, min(250, round(total * 0.45)))
        assert summary.endswith(".")
        assert 0 < count_words(summary) <= target
    assert "\n\n" in build_fallback_summary(SOURCE)
    assert build_fallback_summary("") == EMPTY_SOURCE_SUMMARY


def test_terminal_punctuation() -> None:
    assert ensure_terminal_punctuation('He said "yes."') == 'He said "yes".'
    assert ensure_terminal_punctuation("(Story developing!)") == "(Story developing)!"
    assert ensure_terminal_punctuation("First sentence. Second fragment without end") == "First sentence."
    assert ensure_terminal_punctuation("lone fragment,") == "lone fragment."


def test_numeric_fidelity_rejects_invented_numbers() -> None:
    check_numeric_fidelity("Costs reached 4.2 million and taxes rose 12%.", SOURCE)
    with pytest.raises(ValidationError):
        check_numeric_fidelity("Taxes rose 15 percent.", SOURCE)
    check_numeric_fidelity("The plan dates to 2019.", "Approved in fiscal year 2019-20.")


def test_length_band_truncates_long_summaries() -> None:
    summary = "One two three. " * 50
    bounded = enforce_length_band(summary, 60)
    assert count_words(bounded) == 60
    assert bounded.endswith(".")
    with pytest.raises(ValidationError):
        enforce_length_band("The court met.", 500)


def test_model_output_cleanup() -> None:
    raw = "Here is a summary:\n\n**The court met.**\n\nRead more at WKYT.com\n- It adjourned early."
    assert normalize_model_output(raw) == "The court met.\n\nIt adjourned early."


def test_short_description() -> None:
    assert build_short_description("Short one. Second one.") == "Short one."
    long_sentence = " ".join(["budget"] * 40) + "."
    description = build_short_description(long_sentence)
    assert len(description) <= 160
    assert description.endswith("...")


def test_freshness_ttl_tiers() -> None:
    assert freshness_ttl(NOW - timedelta(hours=2), NOW) == FRESHNESS_TTL_RECENT
    assert freshness_ttl(NOW - timedelta(days=5), NOW) == FRESHNESS_TTL_DEFAULT
    assert freshness_ttl(None, NOW) == FRESHNESS_TTL_DEFAULT


def test_generated_summary_accepted_after_cleanup() -> None:
    generator = ScriptedGenerator([f"Here is a summary:\n\n{GOOD_SUMMARY}\n\nRead more at WKYT.com"])
    result = GenerativeSummarizer(generator, clock=lambda: NOW).summarize("Road plan", SOURCE, NOW)

    assert result.generated
    assert result.summary == GOOD_SUMMARY
    assert result.short_description == "The county fiscal court reviewed a road plan that costs 4.2 million dollars."
    assert result.source_content_hash == content_hash(SOURCE)


def test_hallucinated_number_falls_back() -> None:
    generator = ScriptedGenerator([GOOD_SUMMARY.replace("12 percent", "15 percent")])
    result = GenerativeSummarizer(generator, clock=lambda: NOW).summarize("Road plan", SOURCE, NOW)

    assert not result.generated
    assert result.summary == build_fallback_summary(SOURCE)


def test_generator_failure_falls_back() -> None:
    generator = ScriptedGenerator([RuntimeError("out of memory")])
    result = GenerativeSummarizer(generator, clock=lambda: NOW).summarize("Road plan", SOURCE, NOW)
    assert result.summary == build_fallback_summary(SOURCE)


def test_summaries_are_cached_by_content_hash() -> None:
    clock = FakeClock()
    cache = MemoryKeyValueStore(clock=clock)
    generator = ScriptedGenerator([GOOD_SUMMARY, GOOD_SUMMARY])
    summarizer = GenerativeSummarizer(generator, cache, clock=lambda: NOW)

    first = summarizer.summarize("Road plan", SOURCE, NOW - timedelta(hours=1))
    second = summarizer.summarize("Road plan", SOURCE, NOW - timedelta(hours=1))
    assert first == second
    assert len(generator.prompts) == 1

    # Once the freshness marker lapses the cached summary is re-validated, not regenerated.
    clock.now += FRESHNESS_TTL_RECENT + 1
    assert summarizer.summarize("Road plan", SOURCE, NOW - timedelta(hours=1)) == first
    assert len(generator.prompts) == 1

    summarizer.summarize("Road plan", SOURCE + " Extra sentence here.", NOW)
    assert len(generator.prompts) == 2


def test_stale_cached_summary_failing_validation_is_regenerated() -> None:
    cache = MemoryKeyValueStore()
    source_hash = content_hash(SOURCE)
    cache.set(
        f"summary:{source_hash}",
        json.dumps(
            {
                "summary": "Taxes rose 99 percent.",
                "short_description": "Taxes rose 99 percent.",
                "word_count": 4,
                "source_content_hash": source_hash,
                "generated": True,
            }
        ),
    )
    generator = ScriptedGenerator([GOOD_SUMMARY])

    result = GenerativeSummarizer(generator, cache, clock=lambda: NOW).summarize("Road plan", SOURCE, NOW)

    assert result.summary == GOOD_SUMMARY
    assert len(generator.prompts) == 1


def test_extractive_summarizer_uses_title_when_body_is_empty() -> None:
    result = ExtractiveSummarizer().summarize("Storm knocks out power", "")
    assert result.summary == "Storm knocks out power."
    assert not result.generated


def test_summaries_always_end_on_terminal_punctuation() -> None:
    quoted = build_fallback_summary('The mayor said "the bridge will reopen Monday."')
    assert quoted == 'The mayor said "the bridge will reopen Monday".'

    empty = ExtractiveSummarizer().summarize("", "")
    assert empty.summary == EMPTY_SOURCE_SUMMARY
    assert empty.summary[-1] in ".!?"
    assert empty.short_description == EMPTY_SOURCE_SUMMARY
