# media_rename/tokens.py
"""
Template tokens.

A template is literal text with `${...}` tokens:

    ${title}                   plain token
    ${titleSortable;first}     token with modifiers (applied left to right)
    ${- ,edition,}             optional group: "- <edition>" or nothing at all

Identifiers dispatch through EXTRACTORS (a closed table of pure functions) or
ALIASES (a token that stands for a small template of other tokens). Unknown
identifiers resolve to "" and leave a TemplateResolutionWarning behind.
Resolution never touches the filesystem and never raises; reserved-character
sanitization is done afterwards on the complete string (see utils).
"""
import logging
import re
from typing import Callable, Dict, List, Optional

from .exceptions import TemplateResolutionWarning
from .models import MediaEntity, MediaFile, AudioStream
from .utils import sortable_title, first_character, decade_start

log = logging.getLogger(__name__)

TOKEN_START = "${"
TOKEN_END = "}"
MAX_ALIAS_DEPTH = 5
_SPLIT_MODIFIER_RE = re.compile(r'^split\(\s*(-?\d+)\s*\)$')
_PATH_SEPARATORS_RE = re.compile(r'[\\/]')


def _main_video(entity: MediaEntity) -> Optional[MediaFile]:
    return entity.main_video()

def _first_audio(entity: MediaEntity) -> Optional[AudioStream]:
    mf = entity.main_video()
    return mf.audio_streams[0] if mf and mf.audio_streams else None

def _two_digits(value: Optional[int]) -> str:
    return f"{value:02d}" if value is not None else ""

def _decade_short(entity: MediaEntity) -> str:
    start = decade_start(entity.year)
    return f"{start}s" if start is not None else ""

def _decade_long(entity: MediaEntity) -> str:
    start = decade_start(entity.year)
    return f"{start}-{start + 9}" if start is not None else ""


EXTRACTORS: Dict[str, Callable[[MediaEntity], str]] = {
    'title': lambda e: e.title or "",
    'originalTitle': lambda e: e.original_title or e.title or "",
    'titleSortable': lambda e: e.sort_title or sortable_title(e.title),
    'year': lambda e: str(e.year) if e.year else "",
    'edition': lambda e: e.edition or "",
    'imdb': lambda e: e.ids.get('imdb', ""),
    'tmdb': lambda e: str(e.ids.get('tmdb', "")),
    'decadeShort': _decade_short,
    'decadeLong': _decade_long,
    'videoFormat': lambda e: _main_video(e).get_video_format() if _main_video(e) else "",
    'videoResolution': lambda e: _main_video(e).get_video_resolution() if _main_video(e) else "",
    'videoCodec': lambda e: _main_video(e).video_codec if _main_video(e) else "",
    'audioCodec': lambda e: _first_audio(e).codec if _first_audio(e) else "",
    'audioChannels': lambda e: f"{_first_audio(e).channels}ch" if _first_audio(e) and _first_audio(e).channels else "",
    'audioLanguage': lambda e: _first_audio(e).language if _first_audio(e) else "",
    'showTitle': lambda e: e.show_title or "",
    'seasonNr': lambda e: str(e.season) if e.season is not None else "",
    'seasonNr2': lambda e: _two_digits(e.season),
    'episodeNr': lambda e: str(e.episode) if e.episode is not None else "",
    'episodeNr2': lambda e: _two_digits(e.episode),
    'episodeTitle': lambda e: e.episode_title or "",
}

ALIASES: Dict[str, str] = {
    'titleYear': "${title} ${(,year,)}",
    'episodeCode': "S${seasonNr2}E${episodeNr2}",
    'videoInfo': "${videoFormat} ${videoCodec}",
    'audioInfo': "${audioCodec} ${audioChannels}",
}


class TokenResolver:
    def __init__(self, number_replacement: str = "#"):
        self.number_replacement = number_replacement

    def resolve(self, template: str, entity: MediaEntity, warnings: Optional[List[TemplateResolutionWarning]] = None) -> str:
        """Resolves every token of `template`. Warnings are appended to `warnings` when given."""
        sink: List[TemplateResolutionWarning] = warnings if warnings is not None else []
        return self._resolve(template or "", entity, sink, depth=0)

    def _warn(self, sink: List[TemplateResolutionWarning], message: str):
        log.warning(message)
        sink.append(TemplateResolutionWarning(message))

    def _resolve(self, template: str, entity: MediaEntity, sink: List[TemplateResolutionWarning], depth: int) -> str:
        out: List[str] = []
        pos = 0
        while True:
            start = template.find(TOKEN_START, pos)
            if start < 0:
                out.append(template[pos:])
                break
            end = template.find(TOKEN_END, start + len(TOKEN_START))
            if end < 0:
                self._warn(sink, f"Unterminated token in template '{template}' at position {start}; kept literally.")
                out.append(template[pos:])
                break
            out.append(template[pos:start])
            body = template[start + len(TOKEN_START):end]
            out.append(self._evaluate_body(body, entity, sink, depth))
            pos = end + len(TOKEN_END)
        return "".join(out)

    def _evaluate_body(self, body: str, entity: MediaEntity, sink: List[TemplateResolutionWarning], depth: int) -> str:
        if ',' in body:
            parts = body.split(',', 2)
            if len(parts) != 3:
                self._warn(sink, f"Malformed optional group '${{{body}}}': expected '${{lead,token,trail}}'.")
                return ""
            lead, expression, trail = parts
            value = self._evaluate_expression(expression.strip(), entity, sink, depth)
            return f"{lead}{value}{trail}" if value else ""
        return self._evaluate_expression(body.strip(), entity, sink, depth)

    def _evaluate_expression(self, expression: str, entity: MediaEntity, sink: List[TemplateResolutionWarning], depth: int) -> str:
        name, *modifiers = [p.strip() for p in expression.split(';')]
        if name in EXTRACTORS:
            value = _PATH_SEPARATORS_RE.sub(" ", EXTRACTORS[name](entity))
        elif name in ALIASES:
            if depth >= MAX_ALIAS_DEPTH:
                self._warn(sink, f"Alias '{name}' nested deeper than {MAX_ALIAS_DEPTH} levels; resolved to empty.")
                return ""
            value = self._resolve(ALIASES[name], entity, sink, depth + 1).strip()
        else:
            self._warn(sink, f"Unknown token '{name}'; resolved to empty.")
            return ""
        for modifier in modifiers:
            value = self._apply_modifier(modifier, value, sink)
        return value

    def _apply_modifier(self, modifier: str, value: str, sink: List[TemplateResolutionWarning]) -> str:
        if not modifier: return value
        if modifier == 'first':
            return first_character(value, self.number_replacement)
        if modifier == 'upper':
            return value.upper()
        if modifier == 'lower':
            return value.lower()
        m = _SPLIT_MODIFIER_RE.match(modifier)
        if m:
            items = [item.strip() for item in value.split(',')]
            index = int(m.group(1))
            if len(items) > 1 and -len(items) <= index < len(items):
                return items[index]
            return value
        self._warn(sink, f"Unknown token modifier '{modifier}'; ignored.")
        return value


def resolve(template: str, entity: MediaEntity, warnings: Optional[List[TemplateResolutionWarning]] = None, number_replacement: str = "#") -> str:
    return TokenResolver(number_replacement).resolve(template, entity, warnings)
