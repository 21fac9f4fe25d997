"""
Agent Config File

The config file is a one-way ratchet: it is written from the release template
only when absent, and an existing file is never read or modified, so operator
edits survive every upgrade.
"""

import logging
import os
import re
import tempfile
import tomllib
from pathlib import Path
from typing import Dict, List, Union

import aiofiles

from .errors import ConfigTemplateError, InstallPermissionError
from .fetch import ArtifactFetcher
from .models import CONFIG_FILENAME, ConfigFields, Outcome

logger = logging.getLogger(__name__)

_TABLE_HEADER = re.compile(r"^\s*\[")
_BASIC_ESCAPES = {
    '"': '\\"',
    "\\": "\\\\",
    "\b": "\\b",
    "\t": "\\t",
    "\n": "\\n",
    "\f": "\\f",
    "\r": "\\r",
}


def toml_string(value: str) -> str:
    """Render a TOML basic string"""
    out = []
    for ch in value:
        if ch in _BASIC_ESCAPES:
            out.append(_BASIC_ESCAPES[ch])
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\u{ord(ch):04x}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _key_pattern(key: str, commented: bool) -> "re.Pattern":
    prefix = r"^\s*#+\s*" if commented else r"^\s*"
    return re.compile(prefix + re.escape(key) + r"\s*=")


def toml_value(value: Union[str, List[str]]) -> str:
    if isinstance(value, str):
        return toml_string(value)
    return "[" + ", ".join(toml_string(item) for item in value) + "]"


def _bracket_depth(line: str) -> int:
    """Net count of open array brackets on a line, ignoring strings and comments"""
    depth = 0
    quote = None
    escaped = False
    for ch in line:
        if quote:
            if escaped:
                escaped = False
            elif ch == "\\" and quote == '"':
                escaped = True
            elif ch == quote:
                quote = None
        elif ch in ('"', "'"):
            quote = ch
        elif ch == "#":
            break
        elif ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
    return depth


def _assignment_length(lines: List[str], index: int) -> int:
    """Number of lines taken by the live assignment starting at index"""
    depth = _bracket_depth(lines[index].split("=", 1)[1])
    end = index + 1
    while depth > 0 and end < len(lines):
        depth += _bracket_depth(lines[end])
        end += 1
    return end - index


def splice_fields(template: str, values: Dict[str, Union[str, List[str]]]) -> str:
    """
    Set top-level string and string-array keys in a TOML template, keeping
    everything else.

    An existing assignment of the key before the first table header is
    replaced, including every line of a multi-line array; a commented-out
    example is uncommented only if no live assignment exists. Otherwise the
    key is inserted before the first table.
    """
    lines = template.splitlines()
    first_table = next((i for i, line in enumerate(lines) if _TABLE_HEADER.match(line)), len(lines))

    for key, value in values.items():
        rendered = f"{key} = {toml_value(value)}"
        for commented in (False, True):
            pattern = _key_pattern(key, commented)
            index = next((i for i in range(first_table) if pattern.match(lines[i])), None)
            if index is not None:
                length = 1 if commented else _assignment_length(lines, index)
                lines[index:index + length] = [rendered]
                first_table -= length - 1
                break
        else:
            lines.insert(first_table, rendered)
            first_table += 1

    return "\n".join(lines) + "\n"


def render_config(template: str, fields: ConfigFields) -> str:
    """Splice install values into the template and check the result parses"""
    values: Dict[str, Union[str, List[str]]] = {
        "root_directory": str(fields.root_directory),
        "connect_as": fields.connect_as,
    }
    if fields.core_address:
        # the agent dials every entry of core_addresses
        values["core_address"] = fields.core_address
        values["core_addresses"] = [fields.core_address]
    if fields.onboarding_key:
        values["onboarding_key"] = fields.onboarding_key

    text = splice_fields(template, values)
    try:
        parsed = tomllib.loads(text)
    except tomllib.TOMLDecodeError as e:
        raise ConfigTemplateError(f"Config template is not valid TOML after splicing: {e}") from e

    for key, value in values.items():
        if parsed.get(key) != value:
            raise ConfigTemplateError(f"Config template could not be spliced: '{key}' did not take effect")
    return text


class ConfigReconciler:
    """Creates the agent config file if, and only if, it does not exist."""

    def __init__(self, fetcher: ArtifactFetcher, template_url: str):
        self.fetcher = fetcher
        self.template_url = template_url

    @staticmethod
    def config_path(root_directory: Path) -> Path:
        return Path(root_directory) / CONFIG_FILENAME

    async def reconcile(self, root_directory: Path, desired_fields: ConfigFields) -> Outcome:
        """
        Ensure a config file exists under root_directory.

        Returns:
            CREATED when the template was written, ALREADY_PRESENT when an
            existing file was left untouched
        """
        path = self.config_path(root_directory)

        if os.path.lexists(path):
            self._note_left_existing(path, desired_fields)
            return Outcome.ALREADY_PRESENT

        template = await self.fetcher.fetch(self.template_url)
        try:
            text = render_config(template.decode("utf-8"), desired_fields)
        except UnicodeDecodeError as e:
            raise ConfigTemplateError(f"Config template at {self.template_url} is not UTF-8") from e

        if await self._create_exclusive(path, text):
            logger.info(f"Created config file {path}")
            return Outcome.CREATED

        # Lost a race against a concurrent run; its file wins
        self._note_left_existing(path, desired_fields)
        return Outcome.ALREADY_PRESENT

    def _note_left_existing(self, path: Path, desired_fields: ConfigFields):
        logger.info(f"Config file {path} already exists, leaving it untouched")
        if desired_fields.onboarding_key:
            logger.warning(
                f"Onboarding key not written: {path} already exists and is never modified. "
                "Add 'onboarding_key' to it by hand if the agent still needs to onboard."
            )

    async def _create_exclusive(self, path: Path, text: str) -> bool:
        """Write text to path unless path exists; the file appears complete or not at all"""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            os.close(fd)
        except PermissionError as e:
            raise InstallPermissionError(path.parent) from e

        tmp_path = Path(tmp_name)
        try:
            os.chmod(tmp_path, 0o600)  # may hold the onboarding key
            async with aiofiles.open(tmp_path, "w", encoding="utf-8") as f:
                await f.write(text)
                await f.flush()
            os.link(tmp_path, path)
            return True
        except FileExistsError:
            return False
        except PermissionError as e:
            raise InstallPermissionError(path) from e
        finally:
            tmp_path.unlink(missing_ok=True)
