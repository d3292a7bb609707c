from loguru import logger

from kuberollout.logpersister import LoguruLogPersister, MemoryLogPersister


def test__MemoryLogPersister() -> None:
    log = MemoryLogPersister()
    log.info("Start applying {} manifests", 2)
    log.success("done")
    log.error("literal {braces} are kept without arguments")

    assert log.lines == [
        ("info", "Start applying 2 manifests"),
        ("success", "done"),
        ("error", "literal {braces} are kept without arguments"),
    ]
    assert log.messages("success") == ["done"]


def test__LoguruLogPersister__binds_stage() -> None:
    records: list[dict] = []
    handler = logger.add(lambda message: records.append(message.record), level="INFO")
    try:
        LoguruLogPersister("K8S_SYNC").info("Applied {} manifests", 3)
    finally:
        logger.remove(handler)

    assert records[0]["message"] == "Applied 3 manifests"
    assert records[0]["extra"]["stage"] == "K8S_SYNC"
