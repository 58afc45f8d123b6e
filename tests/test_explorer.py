"""
Tests for the ExplorationLoop.
"""

import pytest

from gitsee.agent import FALLBACK_NOTE, ExplorationLoop, ExplorationState
from gitsee.models import ExplorationMode

from conftest import FEATURES_ANSWER, FIRST_PASS_ANSWER, ScriptedLLM, submit, text_block, tool_block


def last_tool_results(llm: ScriptedLLM):
    """tool_result blocks sent to the model on its most recent call"""
    return llm.calls[-1]["messages"][-1]["content"]


async def test_submit_answer_terminates_ok(checkout):
    llm = ScriptedLLM([
        [tool_block("overview", tool_id="t1")],
        [tool_block("inspect_file", {"file_path": "package.json"}, tool_id="t2")],
        [submit(FIRST_PASS_ANSWER)],
    ])

    outcome = await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FIRST_PASS)

    assert outcome.state is ExplorationState.TERMINATED_OK
    assert outcome.result == FIRST_PASS_ANSWER
    assert outcome.steps == 3
    assert len(llm.calls) == 3
    assert llm.calls[0]["tools"] == ["overview", "inspect_file", "submit_answer"]
    assert "react" in last_tool_results(llm)[0]["content"]


async def test_missing_file_is_reported_and_loop_continues(checkout):
    llm = ScriptedLLM([
        [tool_block("inspect_file", {"file_path": "nope.py"}, tool_id="t1")],
        [submit(FEATURES_ANSWER)],
    ])

    outcome = await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FEATURES)

    assert outcome.state is ExplorationState.TERMINATED_OK
    result_block = last_tool_results(llm)[0]
    assert result_block["tool_use_id"] == "t1"
    assert result_block["content"] == "File not found"
    assert result_block["is_error"] is False


async def test_text_without_tool_call_falls_back(checkout):
    llm = ScriptedLLM([
        [tool_block("overview")],
        [text_block("The repo is a widget shop.")],
    ])

    outcome = await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.GENERIC)

    assert outcome.state is ExplorationState.TERMINATED_FALLBACK
    assert outcome.succeeded
    assert outcome.result == f"The repo is a widget shop.\n\n{FALLBACK_NOTE}"


async def test_structured_fallback_uses_json_in_text(checkout):
    llm = ScriptedLLM([
        [text_block("```json\n{\"summary\": \"shop\", \"features\": [\"cart\"]}\n```")],
    ])

    outcome = await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FEATURES)

    assert outcome.state is ExplorationState.TERMINATED_FALLBACK
    assert outcome.result == {"summary": "shop", "key_files": [], "features": ["cart"]}


async def test_no_text_at_all_is_an_error(checkout):
    llm = ScriptedLLM([[tool_block("overview")], []])

    outcome = await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FEATURES)

    assert outcome.state is ExplorationState.TERMINATED_ERROR
    assert not outcome.succeeded
    assert outcome.error


async def test_model_failure_is_an_error(checkout):
    llm = ScriptedLLM([RuntimeError("model exploded")])

    outcome = await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FEATURES)

    assert outcome.state is ExplorationState.TERMINATED_ERROR
    assert "model exploded" in outcome.error


async def test_step_ceiling(checkout):
    llm = ScriptedLLM([[text_block(f"thinking {i}"), tool_block("overview", tool_id=f"t{i}")] for i in range(10)])

    outcome = await ExplorationLoop(llm, max_steps=3).explore(str(checkout), ExplorationMode.GENERIC)

    assert len(llm.calls) == 3
    assert outcome.steps == 3
    assert outcome.state is ExplorationState.TERMINATED_FALLBACK
    assert outcome.result.startswith("thinking 2")


async def test_step_ceiling_without_text_is_an_error(checkout):
    llm = ScriptedLLM([[tool_block("overview", tool_id=f"t{i}")] for i in range(10)])

    outcome = await ExplorationLoop(llm, max_steps=2).explore(str(checkout), ExplorationMode.GENERIC)

    assert outcome.state is ExplorationState.TERMINATED_ERROR
    assert "Step limit of 2" in outcome.error


async def test_tool_not_offered_becomes_error_result(checkout):
    llm = ScriptedLLM([
        [tool_block("search_text", {"query": "react"}, tool_id="t1")],
        [submit(FIRST_PASS_ANSWER)],
    ])

    outcome = await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FIRST_PASS)

    assert outcome.state is ExplorationState.TERMINATED_OK
    result_block = last_tool_results(llm)[0]
    assert result_block["is_error"] is True
    assert result_block["content"].startswith("Tool execution failed")


async def test_only_first_tool_call_per_step_runs(checkout):
    llm = ScriptedLLM([
        [tool_block("overview", tool_id="t1"), tool_block("inspect_file", {"file_path": "README.md"}, tool_id="t2")],
        [submit(FEATURES_ANSWER)],
    ])
    steps = []

    await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FEATURES, on_step=steps.append)

    results = last_tool_results(llm)
    assert [r["tool_use_id"] for r in results] == ["t1", "t2"]
    assert results[1]["is_error"] is True
    assert [s.tool_name for s in steps] == ["overview"]


async def test_on_step_reports_non_final_calls(checkout):
    llm = ScriptedLLM([
        [tool_block("overview")],
        [tool_block("inspect_file", {"file_path": "README.md"})],
        [submit(FEATURES_ANSWER)],
    ])
    steps = []

    await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FEATURES, on_step=steps.append)

    assert [s.describe() for s in steps] == ["Step 1: overview", "Step 2: inspect_file README.md"]


async def test_observer_failure_does_not_stop_the_run(checkout):
    llm = ScriptedLLM([[tool_block("overview")], [submit(FEATURES_ANSWER)]])

    def broken(step):
        raise RuntimeError("observer bug")

    outcome = await ExplorationLoop(llm).explore(str(checkout), ExplorationMode.FEATURES, on_step=broken)

    assert outcome.state is ExplorationState.TERMINATED_OK


async def test_missing_checkout_is_an_error(tmp_path):
    llm = ScriptedLLM()

    outcome = await ExplorationLoop(llm).explore(str(tmp_path / "missing"), ExplorationMode.FEATURES)

    assert outcome.state is ExplorationState.TERMINATED_ERROR
    assert llm.calls == []


async def test_prompt_overrides_reach_the_model(checkout):
    llm = ScriptedLLM([[submit("done")]])

    await ExplorationLoop(llm, max_steps=7).explore(
        str(checkout),
        ExplorationMode.GENERIC,
        prompt="Where is the checkout flow?",
        system_prompt="You are terse.",
    )

    call = llm.calls[0]
    assert call["messages"][0]["content"][0]["text"] == "Where is the checkout flow?"
    assert call["system_prompt"].startswith("You are terse.")
    assert "7 steps" in call["system_prompt"]


def test_max_steps_must_be_positive():
    with pytest.raises(ValueError):
        ExplorationLoop(ScriptedLLM(), max_steps=0)
