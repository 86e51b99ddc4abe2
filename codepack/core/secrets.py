# codepack/core/secrets.py
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Pattern
from loguru import logger

from .models import SecretMatch

MASK_TOKEN = "******"
MASK_PREFIX_LEN = 3
MAX_LINE_LENGTH = 1000 # Minified/generated lines are not scanned
MAX_SCAN_BYTES = 1_048_576


@dataclass(frozen=True)
class SecretRule:
    name: str
    secret_type: str
    pattern: Pattern[str]
    group: Optional[str] = None # Named group holding the secret, whole match otherwise


SECRET_RULES: List[SecretRule] = [
    SecretRule("AWS Access Key", "api_key",
               re.compile(r"(A3T[A-Z0-9]|AKIA|AGPA|AIDA|AROA|AIPA|ANPA|ANVA|ASIA)[A-Z0-9]{16}")),
    SecretRule("Private Key", "private_key",
               re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----")),
    SecretRule("OpenAI API Key", "api_key",
               re.compile(r"sk-[a-zA-Z0-9]{32,}")),
    SecretRule("GitHub Token", "api_key",
               re.compile(r"ghp_[a-zA-Z0-9]{36}")),
    SecretRule("Google API Key", "api_key",
               re.compile(r"AIza[0-9A-Za-z\-_]{35}")),
    SecretRule("Hardcoded Secret", "password",
               re.compile(r"(?i)(password|passwd|pwd|secret|api_key|apikey|access_token)\s*[:=]\s*[\"'](?P<secret>[^\"']{6,})[\"']"),
               group="secret"),
]


def scan_content(content: str, rules: Iterable[SecretRule] = SECRET_RULES) -> List[SecretMatch]:
    """
    Runs every rule against every line and reports each match with its
    1-based line number. Matches are ordered by line, then rule order.
    """
    rules = list(rules)
    matches: List[SecretMatch] = []
    for line_idx, line in enumerate(content.split("\n")):
        line = line.removesuffix("\r")
        if len(line) > MAX_LINE_LENGTH:
            continue
        for rule in rules:
            for m in rule.pattern.finditer(line):
                if rule.group:
                    secret, start, end = m.group(rule.group), m.start(rule.group), m.end(rule.group)
                else:
                    secret, start, end = m.group(0), m.start(), m.end()
                matches.append(SecretMatch(
                    rule_name=rule.name, line_number=line_idx + 1, match_content=secret,
                    secret_type=rule.secret_type, start=start, end=end,
                ))
    return matches


def _mask_value(secret: str) -> str:
    return secret[:MASK_PREFIX_LEN] + MASK_TOKEN


def _is_masked(secret: str) -> bool:
    return secret[MASK_PREFIX_LEN:].startswith(MASK_TOKEN) or not secret.strip("*")


def mask_secrets(content: str, matches: Iterable[SecretMatch]) -> str:
    """
    Replaces every occurrence of each distinct matched string, anywhere in
    `content`, with its first three characters followed by the mask token.
    Longer secrets are replaced first so a secret containing another is
    not partially masked. Values already in masked form are left alone.
    """
    distinct = {m.match_content for m in matches if m.match_content and not _is_masked(m.match_content)}
    unique = sorted(distinct, key=lambda s: (-len(s), s))
    for secret in unique:
        content = content.replace(secret, _mask_value(secret))
    return content


def mask_text(content: str) -> str:
    """Scans and masks in one step. Safe on already-masked or concatenated text."""
    matches = scan_content(content)
    if not matches:
        return content
    logger.debug(f"Masking {len(matches)} secret match(es)")
    return mask_secrets(content, matches)


def scan_file(path: "str | Path") -> List[SecretMatch]:
    """Scans a single text file. Binary, oversized or unreadable files yield no matches."""
    path = Path(path)
    try:
        if path.stat().st_size > MAX_SCAN_BYTES:
            logger.debug(f"Skipping secret scan of large file: {path}")
            return []
        data = path.read_bytes()
    except OSError as e:
        logger.warning(f"Could not read {path} for secret scan: {e}")
        return []
    if b"\x00" in data:
        return []
    try:
        text = data.decode('utf-8')
    except UnicodeDecodeError:
        return []
    return scan_content(text)


def scan_files(paths: Iterable[str]) -> Dict[str, List[SecretMatch]]:
    """Maps each path that has at least one match to its matches."""
    results: Dict[str, List[SecretMatch]] = {}
    for path in paths:
        found = scan_file(path)
        if found:
            results[path] = found
    if results:
        logger.info(f"Secret scan found matches in {len(results)} file(s)")
    return results
