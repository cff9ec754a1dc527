"""
title_extractor.py — best-effort human-readable title from a release filename.

trace.moe returns the filename of the matched video, e.g.
  "[Ohys-Raws] Shingeki no Kyojin - 01 (MX 1280x720 x264 AAC).mp4"
  "[Group][Kimi no Na wa][1080p].mkv"

This is a pattern match, not a metadata parser; odd filenames simply
produce TITLE_NOT_FOUND.
"""
from __future__ import annotations

import re

TITLE_NOT_FOUND = "Title not found"

_BRACKETED = re.compile(r"\[(.*?)\]")
_AFTER_TAG = re.compile(r"\] ([^-]+) -")


def extract_title(filename: str) -> str:
    segments = _BRACKETED.findall(filename or "")
    if len(segments) >= 2:
        return segments[1].strip()
    match = _AFTER_TAG.search(filename or "")
    if match:
        return match.group(1).strip()
    return TITLE_NOT_FOUND
