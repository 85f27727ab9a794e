import subprocess
import logging
import time
from pathlib import Path
from typing import List
from msync.config.models import TranscodeConfig, FormatProfile
from msync.domain.errors import ProcessError

class FFmpegAdapter:
    """Runs the encoder and cover extractor commands from the format table.

    Every call blocks until the child exits; callers run it on worker threads.
    """

    def __init__(self, config: TranscodeConfig, debug: bool = False):
        self.config = config
        self.debug = debug
        self.logger = logging.getLogger(__name__)

    def profile(self, format_name: str) -> FormatProfile:
        try:
            return self.config.formats[format_name]
        except KeyError:
            raise ValueError(f"Unknown transcode format: {format_name}") from None

    @staticmethod
    def _build_command(template: List[str], source: Path, output: Path) -> List[str]:
        """Substitutes {source} and {output} into a command template."""
        return [
            arg.replace("{source}", str(source)).replace("{output}", str(output))
            for arg in template
        ]

    def encode(self, source: Path, output: Path, format_name: str):
        """Encodes source into output (a temp path) using the format's command."""
        cmd = self._build_command(self.profile(format_name).command, source, output)
        self._run(cmd, output, label=f"ENCODE[{format_name}]")

    def extract_cover(self, source: Path, output: Path):
        """Writes the first embedded picture of source to output as JPEG."""
        cmd = self._build_command(self.config.cover_command, source, output)
        self._run(cmd, output, label="COVER")

    def _run(self, cmd: List[str], output: Path, label: str):
        filename = Path(cmd[-1]).name if cmd else ""
        start_time = time.monotonic() if self.debug else None
        if self.debug:
            self.logger.debug(f"{label}_CMD: {' '.join(cmd)}")

        try:
            result = subprocess.run(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as exc:
            raise ProcessError(cmd, None, str(exc)) from exc

        if self.debug and start_time is not None:
            elapsed = time.monotonic() - start_time
            self.logger.debug(f"{label}_END: {filename} code={result.returncode} elapsed={elapsed:.2f}s")

        if result.returncode != 0:
            detail = (result.stderr or "").strip().splitlines()
            raise ProcessError(cmd, result.returncode, detail[-1] if detail else "")
        if not output.exists() or output.stat().st_size == 0:
            raise ProcessError(cmd, result.returncode, f"no output written to {output.name}")
