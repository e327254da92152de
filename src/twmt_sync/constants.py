import re

STEAM_WORKSHOP_URL = "https://steamcommunity.com/sharedfiles/filedetails/?id={workshop_id}"

WORKSHOP_ID_RE = re.compile(r"^\d+$")

PACK_EXTENSION = ".pack"
LOC_EXTENSION = ".loc"
IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png")

# SQLite caps bound parameters per statement
BULK_CHUNK_SIZE = 500

# RPFM game key -> short name used in schema_<short>.ron
RPFM_SCHEMA_NAMES: dict[str, str] = {
    "warhammer_3": "wh3",
    "warhammer_2": "wh2",
    "warhammer": "wh",
    "three_kingdoms": "3k",
    "troy": "troy",
    "pharaoh": "pharaoh",
    "pharaoh_dynasties": "pharaoh_dynasties",
    "thrones_of_britannia": "tob",
    "attila": "att",
    "rome_2": "rom2",
    "shogun_2": "sho2",
    "napoleon": "nap",
    "empire": "emp",
    "arena": "arena",
}
