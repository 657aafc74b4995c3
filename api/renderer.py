"""
Supervises one run of the external renderer.

The renderer prints newline-delimited text on stdout. Lines shaped like
``{"progress": {"complete": N, "total": M}}`` drive progress; everything else
is just log output. stdout is read here line by line and appended to the log;
stderr is handed the log file descriptor directly, so both streams land in
the same file without a second reader. Both writes go through O_APPEND.
"""

import json
import logging
import subprocess
from dataclasses import dataclass
from numbers import Number
from pathlib import Path
from typing import Callable

from .config import PipelineConfig
from .errors import TransformError
from .records import JobSpec
from .utils import bash_escape, gzip_file, remove_file

logger = logging.getLogger(__name__)


def build_args(spec: JobSpec, input_path: Path, output_path: Path, *, escape: bool = False) -> list[str]:
    """
    Renderer argument vector. With escape=True every value is quoted for
    embedding in a sh command line; the flags themselves are always safe.
    """
    quote = bash_escape if escape else str
    args = [f"-i{quote(str(input_path))}", f"-o{quote(str(output_path))}"]
    if spec.width:
        args.append(f"-w{int(spec.width)}")
    if spec.height:
        args.append(f"-h{int(spec.height)}")
    if spec.preset:
        args.append(f"-p{quote(spec.preset)}")
    if spec.begin_offset is not None:
        args.append(f"-b{int(spec.begin_offset)}")
    if spec.end_offset is not None:
        args.append(f"-e{int(spec.end_offset)}")
    if spec.custom_css and spec.preset == "custom":
        args.append(f"-c{quote(spec.custom_css)}")
    return args


def shell_command(binary: str, spec: JobSpec, input_path: Path, output_path: Path) -> str:
    return " ".join([bash_escape(binary), *build_args(spec, input_path, output_path, escape=True)])


def parse_progress(line) -> tuple | None:
    """(complete, total) from a progress line, None for anything else."""
    try:
        data = json.loads(line)
    except ValueError:
        return None
    if not isinstance(data, dict):
        return None
    progress = data.get("progress")
    if not isinstance(progress, dict):
        return None
    complete, total = progress.get("complete"), progress.get("total")
    for value in (complete, total):
        if not isinstance(value, Number) or isinstance(value, bool):
            return None
    return complete, total


@dataclass
class RenderResult:
    output_path: Path
    log_path: Path | None
    exit_code: int | None = None
    spawn_error: str | None = None

    @property
    def ok(self) -> bool:
        return self.spawn_error is None and self.exit_code == 0

    def check(self) -> Path:
        """Return the output path, or raise TransformError describing the failure."""
        if self.spawn_error is not None:
            raise TransformError(f"could not start renderer: {self.spawn_error}")
        if self.exit_code is not None and self.exit_code < 0:
            raise TransformError(f"renderer killed by signal {-self.exit_code}", exit_code=self.exit_code)
        if self.exit_code != 0:
            raise TransformError(f"renderer exited with code {self.exit_code}", exit_code=self.exit_code)
        if not self.output_path.exists():
            raise TransformError(f"renderer exited cleanly but wrote no output to {self.output_path.name}",
                                 exit_code=0)
        return self.output_path


class Renderer:
    def __init__(self, config: PipelineConfig):
        self.config = config

    def _command(self, spec: JobSpec, input_path: Path, output_path: Path) -> list[str]:
        if self.config.use_shell:
            return ["/bin/sh", "-c", shell_command(self.config.renderer_path, spec, input_path, output_path)]
        return [self.config.renderer_path, *build_args(spec, input_path, output_path)]

    def run(self, spec: JobSpec, input_path: Path, report: Callable) -> RenderResult:
        """
        Run the renderer to completion. Never raises for renderer failures;
        call check() on the result. The log is always gzipped, and the
        plain copy removed, before returning.
        """
        workdir = Path(self.config.workdir)
        output_path = workdir / f"{spec.job_id}.mp4"
        log_path = workdir / f"{spec.job_id}.log"
        result = RenderResult(output_path=output_path, log_path=None)

        logger.info("job %s: rendering %s", spec.job_id, input_path)
        logger.debug("job %s: %s", spec.job_id, shell_command(self.config.renderer_path, spec, input_path, output_path))

        remove_file(log_path)
        with open(log_path, "ab", buffering=0) as log:
            try:
                proc = subprocess.Popen(
                    self._command(spec, input_path, output_path),
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.PIPE,
                    stderr=log,
                    cwd=workdir,
                )
            except OSError as exc:
                logger.error("job %s: spawn failed: %s", spec.job_id, exc)
                result.spawn_error = str(exc)
            else:
                logger.debug("job %s: renderer pid %s", spec.job_id, proc.pid)
                result.exit_code = self._supervise(proc, log, report)
                logger.info("job %s: renderer exited with code %s", spec.job_id, result.exit_code)

        try:
            result.log_path = gzip_file(log_path)
        except OSError as exc:
            logger.warning("job %s: could not compress log: %s", spec.job_id, exc)
        remove_file(log_path)
        if self.config.clean_artifacts:
            remove_file(input_path)
        return result

    def _supervise(self, proc: subprocess.Popen, log, report: Callable) -> int:
        with proc:
            try:
                for line in proc.stdout:
                    log.write(line)
                    progress = parse_progress(line)
                    if progress is not None:
                        report(*progress)
            except BaseException:
                proc.kill()
                raise
            return proc.wait()
