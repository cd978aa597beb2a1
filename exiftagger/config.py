from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import find_dotenv, load_dotenv

# Load .env once; real environment variables win.
load_dotenv(find_dotenv(usecwd=True), override=False)

# Practical capacity of the EXIF UserComment slot inside one APP1 segment.
HARD_PAYLOAD_LIMIT = 65000


def _env(name: str, default: str = "") -> str:
	return (os.getenv(name) or default).strip()


def _env_int(name: str, default: int) -> int:
	v = _env(name, "")
	if v == "":
		return default
	try:
		return int(v)
	except ValueError as e:
		raise RuntimeError(f"Env var {name} must be an int, got {v!r}") from e


@dataclass(frozen=True)
class Settings:
	format_version: str = "1.0"
	max_payload_bytes: int = HARD_PAYLOAD_LIMIT
	json_indent: int = 2
	log_level: str = "INFO"

	ENV_VARS = {
		"format_version": "EXIFTAGGER_FORMAT_VERSION",
		"max_payload_bytes": "EXIFTAGGER_MAX_PAYLOAD_BYTES",
		"json_indent": "EXIFTAGGER_JSON_INDENT",
		"log_level": "EXIFTAGGER_LOG_LEVEL",
	}

	@staticmethod
	def from_env() -> "Settings":
		env = Settings.ENV_VARS
		return Settings(
			format_version=_env(env["format_version"], "1.0"),
			max_payload_bytes=_env_int(env["max_payload_bytes"], HARD_PAYLOAD_LIMIT),
			json_indent=_env_int(env["json_indent"], 2),
			log_level=_env(env["log_level"], "INFO").upper(),
		)

	def __post_init__(self) -> None:
		if not self.format_version:
			raise RuntimeError(f"{self.ENV_VARS['format_version']} must not be empty")
		if not 0 < self.max_payload_bytes <= HARD_PAYLOAD_LIMIT:
			raise RuntimeError(
				f"{self.ENV_VARS['max_payload_bytes']} must be between 1 and {HARD_PAYLOAD_LIMIT}, "
				f"got {self.max_payload_bytes}"
			)
		if self.json_indent < 0:
			raise RuntimeError(f"{self.ENV_VARS['json_indent']} must not be negative")
