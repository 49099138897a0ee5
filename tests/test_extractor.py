import pytest

from backend.errors import GenerationFailed, NoOutputProduced
from backend.extractor import extract, first_output
from backend.model import GenerationJob


def _job(**payload) -> GenerationJob:
    return GenerationJob.from_payload({"id": "pred-1", **payload})


@pytest.mark.parametrize("output", [["X"], "X", ("X", "Y"), ["X", "Y", "Z"]])
def test_first_output(output):
    assert extract(_job(status="succeeded", output=output)) == "X"


@pytest.mark.parametrize("output", [None, [], [None], ""])
def test_succeeded_without_output(output):
    payload = {"status": "succeeded"}
    if output is not None:
        payload["output"] = output
    with pytest.raises(NoOutputProduced):
        extract(_job(**payload))


def test_failed_job_carries_backend_error():
    with pytest.raises(GenerationFailed) as exc_info:
        extract(_job(status="failed", error="CUDA out of memory", logs="..."))
    assert exc_info.value.detail == "CUDA out of memory"


def test_failed_job_falls_back_to_logs():
    with pytest.raises(GenerationFailed) as exc_info:
        extract(_job(status="canceled", logs="canceled by user"))
    assert exc_info.value.detail == "canceled by user"


def test_first_output_helper():
    assert first_output([]) is None
    assert first_output("only") == "only"
