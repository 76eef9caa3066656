# media_rename/utils.py
import re
import os
import fnmatch
import logging
import unicodedata
from pathlib import Path
from functools import lru_cache
from typing import List, Tuple, Optional, Dict, Any, Iterable

import langcodes
from guessit import guessit
from pymediainfo import MediaInfo as MediaInfoParser

from .enums import MediaFileType
from .models import PathSanitizationChange

log = logging.getLogger(__name__)

OPTICAL_DIR_NAMES = {'bdmv': 'BDMV', 'video_ts': 'VIDEO_TS'}
VIDEO_EXTENSIONS = {'.mkv', '.mp4', '.avi', '.mov', '.wmv', '.flv', '.webm', '.mpg', '.mpeg', '.m4v', '.ts', '.m2ts', '.iso', '.divx', '.vob'}
IMAGE_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.tbn', '.gif', '.bmp', '.webp'}
SUBTITLE_EXTENSIONS = {'.srt', '.sub', '.ass', '.ssa', '.vtt', '.idx', '.sup', '.smi'}
AUDIO_EXTENSIONS = {'.mp3', '.flac', '.m4a', '.ogg', '.wav', '.ac3', '.dts', '.aac', '.mka'}
TEXT_EXTENSIONS = {'.txt'}

SORT_TITLE_ARTICLES = ('the', 'a', 'an', 'der', 'die', 'das', 'le', 'la', 'les', 'el', 'los', 'il')

_INVALID_CHARS_RE = re.compile(r'["\\<>|?*]')
_EMPTY_BRACKETS_RE = re.compile(r'\(\s*\)|\[\s*\]|\{\s*\}')
_WHITESPACE_RE = re.compile(r'\s+')
_EDGE_JUNK_RE = re.compile(r'^[\s.\-]+|[\s.\-]+$')
_STACKING_RE = re.compile(r'[ _.-]+(cd|dvd|part|pt|disc|disk)[ _.-]*([0-9]+)$', re.IGNORECASE)

# --- Path Sanitization ---
def replace_invalid_characters(name: str) -> str:
    """Colon becomes ' -' (or '-' when glued to the next char); other reserved characters are removed."""
    s = name.replace(": ", " - ").replace(":", "-")
    return _INVALID_CHARS_RE.sub("", s)

def clean_path_segment(segment: str) -> str:
    s = replace_invalid_characters(segment)
    previous = None
    while previous != s: # "([])" needs more than one pass
        previous = s
        s = _EMPTY_BRACKETS_RE.sub("", s)
    s = _WHITESPACE_RE.sub(" ", s)
    return _EDGE_JUNK_RE.sub("", s)

def sanitize_relative_path(raw: str, context: str = 'folder') -> Tuple[Optional[Path], List[PathSanitizationChange]]:
    """
    Turns a resolved folder template into a relative path that cannot escape its root.
    Returns (None, changes) when nothing usable is left.
    """
    changes: List[PathSanitizationChange] = []
    parts: List[str] = []
    for segment in re.split(r'[\\/]', raw):
        if not segment.strip(): continue
        substituted = replace_invalid_characters(segment)
        if substituted != segment:
            changes.append(PathSanitizationChange(context=context, raw=segment, sanitized=substituted))
        cleaned = clean_path_segment(segment)
        if cleaned in ('', '.', '..'):
            continue
        parts.append(cleaned)
    return (Path(*parts) if parts else None), changes

def sanitize_filename_stem(raw: str) -> Tuple[str, List[PathSanitizationChange]]:
    single = re.sub(r'[\\/]', ' ', raw)
    changes: List[PathSanitizationChange] = []
    substituted = replace_invalid_characters(single)
    if substituted != single:
        changes.append(PathSanitizationChange(context='filename', raw=single, sanitized=substituted))
    return clean_path_segment(single), changes

def is_relative_to(path: Path, base: Path) -> bool:
    try:
        path.relative_to(base)
        return True
    except ValueError:
        return False

def normalize_path_key(path: Path) -> str:
    """Key under which two paths are considered the same destination (case-insensitive filesystems included)."""
    return os.path.normcase(os.path.normpath(str(path))).casefold()

# --- Titles ---
def sortable_title(title: str) -> str:
    if not title: return ""
    m = re.match(r'^(\w+)\s+(.+)$', title.strip())
    if m and m.group(1).lower() in SORT_TITLE_ARTICLES:
        return f"{m.group(2)}, {m.group(1)}"
    return title.strip()

def first_character(value: str, number_replacement: str = "#") -> str:
    folded = unicodedata.normalize('NFKD', value)
    for ch in folded:
        if unicodedata.combining(ch): continue
        if ch.isalpha(): return ch.upper()
        if ch.isdigit(): return number_replacement
    return ""

def decade_start(year: Optional[int]) -> Optional[int]:
    return (year // 10) * 10 if year else None

def is_optical_dir_name(name: str) -> bool:
    return name.lower() in OPTICAL_DIR_NAMES

def matches_any_pattern(name: str, patterns: Iterable[str]) -> bool:
    lower_name = name.lower()
    return any(fnmatch.fnmatch(lower_name, p.lower()) for p in patterns)

def split_stacking_marker(stem: str) -> Tuple[str, str]:
    m = _STACKING_RE.search(stem)
    if not m: return stem, ""
    return stem[:m.start()], f"{m.group(1).lower()}{int(m.group(2))}"

# --- Languages ---
@lru_cache(maxsize=128)
def normalize_language(value: str) -> str:
    """'en' / 'en-US' / 'eng' -> 'eng' (ISO 639-2/B, like the subtitle tags players expect)."""
    if not value: return ""
    raw = value.strip()
    try:
        return langcodes.get(raw, normalize=True).to_alpha3(variant='B')
    except (LookupError, ValueError) as e:
        log.debug(f"Could not normalize language '{value}': {e}")
        return raw.lower()

@lru_cache(maxsize=256)
def parse_subtitle_language(filename: str) -> Tuple[str, bool]:
    """Returns (ISO 639-2/B code or '', forced flag) guessed from a subtitle filename."""
    lang_code, forced = "", False
    try:
        guess = guessit(filename, options={'expected_type': 'subtitle'})
        log.debug(f"Guessit result for subtitle '{filename}': {dict(guess)}")
        lang_obj = guess.get('subtitle_language') or guess.get('language')
        if isinstance(lang_obj, list): lang_obj = lang_obj[0] if lang_obj else None
        if lang_obj is not None:
            lang_code = normalize_language(str(lang_obj))
        other = guess.get('other', [])
        if isinstance(other, str): other = [other]
        forced = bool(guess.get('forced')) or any(str(o).lower() == 'forced' for o in other)
    except Exception as e:
        log.debug(f"Guessit failed on subtitle '{filename}': {e}")
    if not forced and re.search(r'(?:[^\w]|^)forced(?:[^\w]|$)', Path(filename).stem, re.IGNORECASE):
        forced = True
    return lang_code, forced

# --- File Types ---
_IMAGE_TYPE_SUFFIXES: List[Tuple[Tuple[str, ...], MediaFileType]] = [
    (('poster', 'folder', 'cover'), MediaFileType.POSTER),
    (('fanart', 'backdrop'), MediaFileType.FANART),
    (('banner',), MediaFileType.BANNER),
    (('clearart',), MediaFileType.CLEARART),
    (('clearlogo',), MediaFileType.CLEARLOGO),
    (('logo',), MediaFileType.LOGO),
    (('thumb', 'landscape'), MediaFileType.THUMB),
    (('disc', 'discart'), MediaFileType.DISC),
]
_SEASON_ART_RE = re.compile(r'^season(\d+|-all|-specials)-(poster|fanart|banner)$', re.IGNORECASE)

def detect_file_type(path: Path, relative_parts: Tuple[str, ...] = ()) -> MediaFileType:
    """Best-effort type of a file found on disk; `relative_parts` are its folders below the entity root."""
    folders = [p.lower() for p in relative_parts]
    if path.is_dir():
        return MediaFileType.VIDEO if is_optical_dir_name(path.name) else MediaFileType.UNKNOWN
    ext = path.suffix.lower()
    stem = path.stem.lower()

    if ext in VIDEO_EXTENSIONS:
        if 'extras' in folders: return MediaFileType.EXTRA
        if any(f in ('trailer', 'trailers') for f in folders): return MediaFileType.TRAILER
        if stem == 'trailer' or re.search(r'[-._ ]trailer\d*$', stem): return MediaFileType.TRAILER
        if stem == 'sample' or re.search(r'[-._ ]sample$', stem): return MediaFileType.SAMPLE
        return MediaFileType.VIDEO
    if ext in IMAGE_EXTENSIONS:
        season = _SEASON_ART_RE.match(stem)
        if season:
            return MediaFileType['SEASON_' + season.group(2).upper()]
        for names, file_type in _IMAGE_TYPE_SUFFIXES:
            if any(stem == n or stem.endswith('-' + n) or stem.endswith('.' + n) for n in names):
                return file_type
        return MediaFileType.UNKNOWN
    if ext == '.nfo': return MediaFileType.NFO
    if ext in SUBTITLE_EXTENSIONS: return MediaFileType.SUBTITLE
    if ext in AUDIO_EXTENSIONS:
        return MediaFileType.THEME if stem == 'theme' else MediaFileType.AUDIO
    if ext in TEXT_EXTENSIONS: return MediaFileType.TEXT
    return MediaFileType.UNKNOWN

# --- Stream Info ---
def extract_stream_info(file_path: Path) -> Dict[str, Any]:
    """Reads width/height/codecs of a video file with pymediainfo. Missing values stay None."""
    results: Dict[str, Any] = {'width': None, 'height': None, 'video_codec': None, 'audio': []}
    if not file_path or not file_path.is_file():
        log.warning(f"Cannot extract stream info: File not found or not a file: {file_path}")
        return results
    try:
        log.debug(f"Parsing stream info for: {file_path.name}")
        media_info = MediaInfoParser.parse(str(file_path))

        video_track = next((t for t in media_info.tracks if t.track_type == 'Video'), None)
        if video_track:
            results['width'] = getattr(video_track, 'width', None)
            results['height'] = getattr(video_track, 'height', None)
            vformat = (getattr(video_track, 'format', None) or "").lower()
            if 'avc' in vformat or 'h264' in vformat: results['video_codec'] = 'h264'
            elif 'hevc' in vformat or 'h265' in vformat: results['video_codec'] = 'h265'
            elif 'vp9' in vformat: results['video_codec'] = 'vp9'
            elif 'av1' in vformat: results['video_codec'] = 'av1'
            elif 'mpeg-4 visual' in vformat or 'xvid' in vformat: results['video_codec'] = 'xvid'
            elif 'mpeg video' in vformat: results['video_codec'] = 'MPEG'
            elif vformat: results['video_codec'] = vformat.split('/')[0].strip()

        for track in (t for t in media_info.tracks if t.track_type == 'Audio'):
            aformat = (getattr(track, 'format', None) or "").lower()
            if 'e-ac-3' in aformat: codec = 'EAC3'
            elif 'ac-3' in aformat: codec = 'AC3'
            elif 'dts' in aformat: codec = 'DTS'
            elif 'truehd' in aformat: codec = 'TrueHD'
            elif 'aac' in aformat: codec = 'AAC'
            elif 'flac' in aformat: codec = 'FLAC'
            elif 'mpeg audio' in aformat or 'mp3' in aformat: codec = 'MP3'
            else: codec = aformat.split('/')[0].strip().upper()
            try: channels = int(getattr(track, 'channel_s', 0) or 0)
            except (ValueError, TypeError):
                log.warning(f"Could not parse audio channels for {file_path.name}")
                channels = 0
            results['audio'].append({'codec': codec, 'channels': channels, 'language': getattr(track, 'language', None) or ""})
    except Exception as e:
        log.error(f"Error parsing media info for '{file_path.name}': {e}", exc_info=True)

    log.debug(f"Extracted stream info for {file_path.name}: {results}")
    return results
