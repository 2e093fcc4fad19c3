import pytest

from esmforge.domain.enums import MessageLevel, WorkerCategory, WorkerState
from esmforge.domain.models import WorkerSpec
from esmforge.pipeline.lint import WorkerGroup
from esmforge.pipeline.registry import classify
from esmforge.types import LintError, WorkerComplete, WorkerMsg, WorkerReset, WorkerUpdate

from conftest import python_command


def run_group(tmp_path, channel, log, declarations):
    relevant, _ = classify(declarations)
    group = WorkerGroup(channel, log, tmp_path)
    group.start(relevant)
    return group, group.join()


def test_lint_output_is_forwarded(tmp_path, channel, events, log):
    command = python_command("import sys; print('all good'); sys.stderr.write('warn\\n')")
    _, errors = run_group(tmp_path, channel, log, {"lintall:eslint": command})

    assert errors == []
    assert events[0] == WorkerUpdate(id="lintall:eslint", state=WorkerState.RUNNING)
    assert WorkerMsg(id="lintall:eslint", level=MessageLevel.LOG, text="all good\n") in events
    assert WorkerMsg(id="lintall:eslint", level=MessageLevel.ERROR, text="warn\n") in events
    assert events[-1] == WorkerComplete(id="lintall:eslint", error=None)


def test_lint_failure_is_collected_not_raised(tmp_path, channel, events, log):
    _, errors = run_group(tmp_path, channel, log, {"lintall:stylelint": python_command("raise SystemExit(2)")})

    assert len(errors) == 1
    assert isinstance(errors[0], LintError)
    assert errors[0].returncode == 2
    assert events[-1] == WorkerComplete(id="lintall:stylelint", error=errors[0])


def test_type_checker_state_transitions(tmp_path, channel, events, log):
    command = python_command(
        "print('\\x1bcStarting compilation')\n"
        "print('Found 2 errors. Watching for file changes.')\n"
    )
    _, errors = run_group(tmp_path, channel, log, {"lintall:tsc": command})

    assert errors == []
    states = [e.state for e in events if isinstance(e, WorkerUpdate)]
    assert states == [WorkerState.RUNNING, WorkerState.RUNNING, WorkerState.WATCHING, WorkerState.ERROR]
    assert WorkerReset(id="lintall:tsc") in events
    messages = [e.text for e in events if isinstance(e, WorkerMsg)]
    assert "Starting compilation\n" in messages
    assert all("\x1bc" not in text for text in messages)


def test_zero_errors_does_not_mark_error(tmp_path, channel, events, log):
    command = python_command("print('Found 0 errors. Watching for file changes.')")
    run_group(tmp_path, channel, log, {"lintall:tsc": command})

    states = [e.state for e in events if isinstance(e, WorkerUpdate)]
    assert WorkerState.ERROR not in states
    assert WorkerState.WATCHING in states


def test_non_type_checker_ignores_status_lines(tmp_path, channel, events, log):
    command = python_command("print('Found 3 errors. Watching for file changes.')")
    run_group(tmp_path, channel, log, {"lintall:eslint": command})

    states = [e.state for e in events if isinstance(e, WorkerUpdate)]
    assert states == [WorkerState.RUNNING]


def test_group_only_starts_lint_workers(tmp_path, channel, log):
    group = WorkerGroup(channel, log, tmp_path)
    started = group.start([
        WorkerSpec(id="build:js", command="cat", category=WorkerCategory.BUILD, extensions=("js",)),
        WorkerSpec(id="mount:public", command="mount public", category=WorkerCategory.MOUNT),
    ])
    assert started == []
    assert group.join() == []


def test_terminate_stops_every_process_of_a_compound_command(tmp_path, channel, log):
    sleeper = python_command("import time; time.sleep(30)")
    relevant, _ = classify({"lintall:watch": f"{sleeper} && {sleeper}"})
    group = WorkerGroup(channel, log, tmp_path)
    (worker,) = group.start(relevant)

    group.terminate()

    # settles only once every process holding the output pipes is gone
    error = worker.join(timeout=15)
    assert isinstance(error, LintError)
    assert worker.process.poll() is not None
