import pytest

from seashell.chunks import ChunkStore
from seashell.config import TranscriptionConfig
from seashell.errors import RecognitionRuntimeError, RecognitionSpawnError
from seashell.events import JobExited
from seashell.transcriber import (
    JobStatus,
    TranscriptionJob,
    build_recognition_command,
    classify_diagnostics,
    clean_transcript,
)

from conftest import speak


def test_recognition_command_resolves_paths_against_config(config, tmp_path):
    argv = build_recognition_command(config, tmp_path / "chunk-3.wav")

    assert argv[0] == str(tmp_path / "whisper.cpp/build/bin/whisper-cli")
    assert argv[1:3] == ["-m", str(tmp_path / "models/ggml-large-v3-turbo-q5_0.bin")]
    assert "--vad" in argv
    assert argv[argv.index("-f") + 1] == str(tmp_path / "chunk-3.wav")
    assert argv[argv.index("-l") + 1] == "en"
    assert argv[argv.index("-t") + 1] == "6"
    assert argv[-2:] == ["-nt", "-np"]


def test_recognition_command_without_vad(config, tmp_path):
    config.transcription.vad = False
    argv = build_recognition_command(config, tmp_path / "c.wav")

    assert "--vad" not in argv
    assert "-vm" not in argv


def test_clean_transcript_strips_annotations_and_whitespace():
    raw = "\n [BLANK_AUDIO]\n  Hello   there,\n general [music playing] Kenobi.  \n"
    assert clean_transcript(raw) == "Hello there, general Kenobi."


def test_diagnostics_suppress_model_loading_chatter():
    stderr = "\n".join([
        "whisper_init_from_file: error loading optional tensor",
        "whisper_vad: error threshold adjusted",
        "load_silero: error ignored",
        "error: failed to read audio file 'x.wav'",
        "system_info: n_threads = 6",
    ])
    assert classify_diagnostics(stderr, TranscriptionConfig()) == [
        "error: failed to read audio file 'x.wav'"
    ]


def test_diagnostics_are_truncated():
    config = TranscriptionConfig(advisory_max_chars=10)
    assert classify_diagnostics("error: " + "x" * 50, config) == ["error: xxx"]


@pytest.fixture
def job_for(config, spawner, tmp_path):
    store = ChunkStore(str(tmp_path))
    posted = []

    def factory():
        chunk = store.new_chunk()
        speak(chunk)
        chunk.refresh_size()
        job = TranscriptionJob(chunk, config, post=posted.append, delete_audio=store.delete, spawn=spawner)
        return job, posted

    return factory


def test_successful_job_returns_text_and_deletes_audio(job_for, spawner):
    job, posted = job_for()
    job.start()
    assert job.status is JobStatus.RUNNING
    assert job.started_at is not None

    spawner.whispers[0].finish(0, stdout=" Testing one two. [BLANK_AUDIO]\n")
    assert isinstance(posted[0], JobExited)

    result = job.finish(posted[0].returncode, posted[0].stdout, posted[0].stderr)
    assert result.status is JobStatus.SUCCEEDED
    assert result.text == "Testing one two."
    assert not job.chunk.path.exists()


def test_single_character_output_counts_as_nothing(job_for):
    job, _ = job_for()
    job.start()

    result = job.finish(0, "[BLANK_AUDIO]\n.\n", "")

    assert result.status is JobStatus.SUCCEEDED
    assert result.text is None


def test_failed_process_drops_chunk(job_for):
    job, _ = job_for()
    job.start()

    result = job.finish(1, "partial", "error: out of memory\n")

    assert result.status is JobStatus.FAILED
    assert result.text is None
    assert isinstance(result.error, RecognitionRuntimeError)
    assert "out of memory" in str(result.error)
    assert not job.chunk.path.exists()


def test_spawn_failure_deletes_audio(job_for, spawner):
    spawner.failing.add("whisper")
    job, _ = job_for()

    with pytest.raises(RecognitionSpawnError):
        job.start()
    assert job.status is JobStatus.FAILED
    assert not job.chunk.path.exists()
