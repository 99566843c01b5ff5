import pytest

from sf_cli_runner import JobDescriptor, JobState, JobStateError
from sf_cli_runner.jobs import looks_like_job, map_remote_state, record_failure_from


@pytest.mark.parametrize(
    ("remote", "expected"),
    [
        ("JobComplete", JobState.COMPLETED),
        ("Completed", JobState.COMPLETED),
        ("Failed", JobState.FAILED),
        ("Aborted", JobState.FAILED),
        ("InProgress", JobState.IN_PROGRESS),
        ("UploadComplete", JobState.IN_PROGRESS),
        (None, JobState.IN_PROGRESS),
    ],
)
def test_map_remote_state(remote: str | None, expected: JobState) -> None:
    assert map_remote_state(remote) is expected


def test_job_moves_from_submitted_to_completed() -> None:
    job = JobDescriptor(job_id="Unknown")
    assert job.state is JobState.SUBMITTED

    job.apply_poll({"jobId": "7505g00000AbCdE", "state": "InProgress"})
    assert job.state is JobState.IN_PROGRESS
    assert job.job_id == "7505g00000AbCdE"

    job.apply_poll({"state": "JobComplete", "numberRecordsProcessed": 5, "numberRecordsFailed": 0})
    assert job.state is JobState.COMPLETED
    assert job.records_processed == 5
    assert job.has_failures is False


def test_terminal_states_are_absorbing() -> None:
    job = JobDescriptor.from_response({"jobId": "750", "state": "Failed"})
    assert job.state is JobState.FAILED
    with pytest.raises(JobStateError):
        job.apply_poll({"state": "JobComplete"})
    with pytest.raises(JobStateError):
        job.mark_timed_out()


def test_mark_timed_out_from_in_progress() -> None:
    job = JobDescriptor(job_id="750")
    job.apply_poll({"state": "InProgress"})
    job.mark_timed_out()
    assert job.state is JobState.TIMED_OUT
    assert job.state.terminal


def test_processed_count_without_state_means_completed() -> None:
    job = JobDescriptor.from_response({"jobId": "750", "processedRecords": 3, "failedRecords": 0})
    assert job.state is JobState.COMPLETED


def test_numeric_envelope_status_is_not_a_job_state() -> None:
    job = JobDescriptor.from_response({"status": 0, "jobId": "750", "numberRecordsProcessed": 2})
    assert job.remote_state is None
    assert job.state is JobState.COMPLETED


def test_record_failure_message_sources() -> None:
    assert record_failure_from({"message": "A"}).message == "A"
    assert record_failure_from({"error": "B"}).message == "B"
    assert record_failure_from({"sf__Error": "C", "Name": "x"}).message == "C"
    assert record_failure_from({"Name": "x"}).message == '{"Name": "x"}'
    assert record_failure_from("plain text").message == "plain text"


def test_to_dict_and_looks_like_job() -> None:
    job = JobDescriptor.from_response(
        {"jobId": "750", "state": "JobComplete", "failedResults": [{"message": "bad"}], "numberRecordsFailed": 1}
    )
    assert job.to_dict() == {
        "jobId": "750",
        "state": "completed",
        "remoteState": "JobComplete",
        "recordsProcessed": None,
        "recordsFailed": 1,
        "failures": ["bad"],
    }
    assert looks_like_job({"id": "750"})
    assert not looks_like_job({"status": 0})
    assert not looks_like_job(["750"])


def test_rejected_records_without_state_mean_completed() -> None:
    job = JobDescriptor.from_response({"jobId": "750", "failedResults": ["row 3: bad value"]})
    assert job.state is JobState.COMPLETED


def test_bare_job_id_stays_in_progress() -> None:
    job = JobDescriptor.from_response({"jobId": "750"})
    assert job.state is JobState.IN_PROGRESS
