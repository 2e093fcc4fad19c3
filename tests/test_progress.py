import logging
import threading

from esmforge.domain.enums import MessageLevel, WorkerState
from esmforge.pipeline.progress import LoggingRenderer, ProgressChannel
from esmforge.types import MissingWebModule, TransformError, WorkerComplete, WorkerMsg, WorkerUpdate


def test_subscribers_receive_events_in_order(channel):
    first, second = [], []
    channel.subscribe(first.append)
    channel.subscribe(second.append)

    channel.emit(WorkerUpdate(id="build:js", state=WorkerState.RUNNING))
    channel.message("build:js", "hello")

    assert first == second == [
        WorkerUpdate(id="build:js", state=WorkerState.RUNNING),
        WorkerMsg(id="build:js", level=MessageLevel.LOG, text="hello"),
    ]


def test_concurrent_emits_are_not_lost():
    channel = ProgressChannel()
    received = []
    channel.subscribe(received.append)

    def emit_many(worker_id):
        for i in range(200):
            channel.message(worker_id, str(i))

    threads = [threading.Thread(target=emit_many, args=(f"lintall:{n}",)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(received) == 800
    for n in range(4):
        texts = [e.text for e in received if e.id == f"lintall:{n}"]
        assert texts == [str(i) for i in range(200)]


def test_worker_update_color():
    assert WorkerUpdate(id="a", state=WorkerState.RUNNING).color == "yellow"
    assert WorkerUpdate(id="a", state=WorkerState.ERROR).color == "red"
    assert WorkerUpdate(id="a", state=WorkerState.WATCHING).color is None


def test_renderer_logs_and_tracks_failures(channel, caplog):
    renderer = LoggingRenderer(logging.getLogger("esmforge.tests.progress")).attach(channel)

    with caplog.at_level(logging.DEBUG, logger="esmforge.tests.progress"):
        channel.message("build:js", "compiled\n")
        channel.message("build:js", "   \n")
        channel.message("build:js", "bad thing", MessageLevel.ERROR)
        channel.emit(WorkerComplete(id="build:js", error=TransformError("build:js", "1 file(s) failed")))
        channel.emit(WorkerComplete(id="mount:public"))

    messages = [(r.levelname, r.getMessage()) for r in caplog.records]
    assert ("INFO", "[build:js] compiled") in messages
    assert ("ERROR", "[build:js] bad thing") in messages
    assert ("INFO", "[mount:public] done") in messages
    assert len(messages) == 4
    assert renderer.failed_workers == {"build:js": "[build:js] 1 file(s) failed"}


def test_renderer_collects_missing_web_modules_once(channel, caplog):
    renderer = LoggingRenderer().attach(channel)

    channel.emit(MissingWebModule("lodash-es"))
    channel.emit(MissingWebModule("lodash-es"))
    channel.emit(MissingWebModule("react"))
    with caplog.at_level(logging.WARNING, logger="esmforge.progress"):
        renderer.summary()

    assert renderer.missing_web_modules == ["lodash-es", "react"]
    assert "2 bare import(s) not found in the import map: lodash-es, react" in caplog.text
