# tests/test_tokens.py
import pytest
from pathlib import Path

from media_rename.enums import MediaFileType
from media_rename.exceptions import TemplateResolutionWarning
from media_rename.models import MediaEntity, MediaFile, AudioStream
from media_rename.tokens import TokenResolver, resolve, ALIASES

@pytest.fixture
def the_dish():
    video = MediaFile(path=Path("/m/The Dish/dish.mkv"), file_type=MediaFileType.VIDEO,
                      video_width=1920, video_height=800, video_codec='h264',
                      audio_streams=[AudioStream(codec='AC3', channels=6, language='eng')])
    return MediaEntity(title="The Dish", year=2000, data_source=Path("/m"), path=Path("/m/The Dish"),
                       media_files=[video], ids={'imdb': 'tt0205873', 'tmdb': '5257'})

@pytest.fixture
def episode():
    return MediaEntity(title="Pilot", kind='episode', data_source=Path("/tv"), path=Path("/tv/Show"),
                       show_title="Firefly", season=1, episode=3, episode_title="Bushwhacked")

@pytest.mark.parametrize("template, expected", [
    ("${title}", "The Dish"),
    ("${_,title,}", "_The Dish"),
    ("${(,year,)}", "(2000)"),
    ("${titleSortable}", "Dish, The"),
    ("${titleSortable;first}", "D"),
    ("${title;first}", "T"),
    ("${decadeLong}", "2000-2009"),
    ("${decadeShort}", "2000s"),
    ("${videoFormat}", "1080p"),
    ("${videoResolution}", "1920x800"),
    ("${videoCodec}", "h264"),
    ("${audioCodec}", "AC3"),
    ("${audioChannels}", "6ch"),
    ("${audioLanguage}", "eng"),
    ("${imdb}", "tt0205873"),
    ("${tmdb}", "5257"),
    ("${title;upper}", "THE DISH"),
    ("${titleYear}", "The Dish (2000)"),
    ("${videoInfo}", "1080p h264"),
    ("${audioInfo}", "AC3 6ch"),
    ("${title} ${- ,edition,}", "The Dish "),
    ("plain text", "plain text"),
])
def test_resolve_movie_tokens(the_dish, template, expected):
    assert resolve(template, the_dish) == expected

def test_optional_group_emits_lead_and_trail_when_token_present(the_dish):
    the_dish.edition = "Director's Cut"
    assert resolve("${title}${ - ,edition,}", the_dish) == "The Dish - Director's Cut"

def test_optional_group_is_empty_when_token_empty(the_dish):
    the_dish.year = None
    assert resolve("${[,year,]}", the_dish) == ""
    assert resolve("${[,decadeShort,]}", the_dish) == ""

def test_optional_group_with_modifier(the_dish):
    assert resolve("${(,title;first,)}", the_dish) == "(T)"

def test_episode_tokens(episode):
    assert resolve("${showTitle} - ${episodeCode} - ${episodeTitle}", episode) == "Firefly - S01E03 - Bushwhacked"
    assert resolve("Season ${seasonNr}/${seasonNr2}x${episodeNr}", episode) == "Season 1/01x3"

def test_unknown_token_resolves_empty_with_warning(the_dish):
    warnings = []
    assert resolve("${title}${doesNotExist}", the_dish, warnings) == "The Dish"
    assert len(warnings) == 1
    assert isinstance(warnings[0], TemplateResolutionWarning)
    assert "doesNotExist" in str(warnings[0])

def test_unknown_token_is_logged(the_dish, caplog):
    resolve("${nope}", the_dish)
    assert "Unknown token 'nope'" in caplog.text

def test_unknown_modifier_is_ignored_with_warning(the_dish):
    warnings = []
    assert resolve("${title;sparkle}", the_dish, warnings) == "The Dish"
    assert len(warnings) == 1

def test_unterminated_token_kept_literally(the_dish):
    warnings = []
    assert resolve("${title} ${year", the_dish, warnings) == "The Dish ${year"
    assert len(warnings) == 1

def test_malformed_optional_group(the_dish):
    warnings = []
    assert resolve("${a,title}", the_dish, warnings) == ""
    assert len(warnings) == 1

def test_first_character_number_replacement(the_dish):
    the_dish.title = "2 Fast 2 Furious"
    assert resolve("${title;first}", the_dish) == "#"
    assert TokenResolver("0").resolve("${title;first}", the_dish) == "0"

def test_first_character_folds_accents(the_dish):
    the_dish.title = "Élite"
    assert resolve("${title;first}", the_dish) == "E"

def test_split_modifier(the_dish):
    the_dish.title = "Alpha, Beta, Gamma"
    assert resolve("${title;split(1)}", the_dish) == "Beta"
    assert resolve("${title;split(-1)}", the_dish) == "Gamma"
    assert resolve("${title;split(7)}", the_dish) == "Alpha, Beta, Gamma"

def test_path_separators_in_values_become_spaces(the_dish):
    the_dish.title = "AC/DC: Live"
    assert resolve("${title}", the_dish) == "AC DC: Live"

def test_resolve_is_idempotent(the_dish):
    template = "${titleSortable;first}/${titleSortable} ${- ,edition,} (${year}) [${videoFormat}]"
    assert resolve(template, the_dish) == resolve(template, the_dish)

def test_missing_video_yields_empty_technical_tokens(the_dish):
    the_dish.media_files = []
    assert resolve("${videoFormat}${videoCodec}${audioCodec}${audioChannels}", the_dish) == ""

def test_sort_title_override(the_dish):
    the_dish.sort_title = "Dish"
    assert resolve("${titleSortable}", the_dish) == "Dish"

def test_aliases_resolve_without_warnings(the_dish):
    for name in ALIASES:
        warnings = []
        resolve("${" + name + "}", the_dish, warnings)
        assert warnings == [], name
