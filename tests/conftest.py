"""Shared test fixtures."""

from __future__ import annotations

import json
import stat
import sys
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import pytest

_CONFIG_ENV_VARS = (
    "REDIS_URL",
    "REDIS_QUEUE",
    "POLL_TIMEOUT_SECONDS",
    "CALLBACK_URL",
    "CALLBACK_TIMEOUT_SECONDS",
    "CALLBACK_MAX_RETRIES",
    "TARGET_LANGUAGE",
    "OUTPUT_SUFFIX",
    "SCRIPT_TIMEOUT_SECONDS",
    "OPENROUTER_API_KEY",
    "OPENROUTER_MODEL",
    "OPENROUTER_INSTRUCTION",
    "OPENROUTER_RATE_LIMIT",
    "OPENROUTER_MAX_BATCH_SIZE",
    "OPENROUTER_AUTO_SELECT_MODEL",
    "OPENROUTER_FALLBACK_MODEL",
    "LLM_SUBTRANS_SCRIPT_PATH",
    "LLM_SUBTRANS_DIR",
    "GEMINI_API_KEY",
    "GEMINI_MODEL",
    "GEMINI_INSTRUCTION",
    "GEMINI_RATE_LIMIT",
    "GEMINI_MAX_BATCH_SIZE",
    "GEMINI_SCRIPT_PATH",
    "GEMINI_WORKDIR",
    "EVALUATOR_API_KEY",
    "EVALUATOR_MODEL",
    "EVALUATOR_SCHEDULE_HOUR",
    "LOG_LEVEL",
)

# Fake translation script: records argv and the key env vars, then writes the
# output file named after ``-o``. FAKE_SCRIPT_STDOUT and FAKE_SCRIPT_EXIT tune
# the outcome; FAKE_SCRIPT_SKIP_OUTPUT suppresses the output file.
_FAKE_SCRIPT_BODY = '''
import json
import os
import sys
from pathlib import Path

args = sys.argv[1:]
record = {
    "argv": args,
    "openrouter_key": os.environ.get("OPENROUTER_API_KEY"),
    "gemini_key": os.environ.get("GEMINI_API_KEY"),
    "cwd": os.getcwd(),
}
Path(os.environ["FAKE_SCRIPT_RECORD"]).write_text(json.dumps(record), encoding="utf-8")

print("Translating batch 1/1")
print("stderr progress line", file=sys.stderr)
extra = os.environ.get("FAKE_SCRIPT_STDOUT", "")
if extra:
    print(extra)
if not os.environ.get("FAKE_SCRIPT_SKIP_OUTPUT"):
    output = args[args.index("-o") + 1]
    Path(output).write_text("1\\n00:00:01,000 --> 00:00:02,000\\n你好\\n", encoding="utf-8")
sys.exit(int(os.environ.get("FAKE_SCRIPT_EXIT", "0")))
'''


@pytest.fixture(autouse=True)
def clean_config_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _CONFIG_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture()
def write_script(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write an executable Python script run by the current interpreter."""

    def _write(name: str, body: str) -> Path:
        path = tmp_path / name
        path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _write


@dataclass(slots=True)
class FakeScript:
    path: Path
    record_path: Path

    def record(self) -> dict[str, Any]:
        return json.loads(self.record_path.read_text(encoding="utf-8"))


@pytest.fixture()
def fake_translation_script(
    write_script: Callable[[str, str], Path],
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> FakeScript:
    record_path = tmp_path / "record.json"
    monkeypatch.setenv("FAKE_SCRIPT_RECORD", str(record_path))
    return FakeScript(
        path=write_script("fake-subtrans.py", _FAKE_SCRIPT_BODY),
        record_path=record_path,
    )
