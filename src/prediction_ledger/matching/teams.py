"""Short team abbreviations used in context document names."""

TEAM_ABBREVIATIONS: dict[str, str] = {
    "1. fc heidenheim 1846": "fch",
    "1. fc köln": "fck",
    "1. fc union berlin": "fcu",
    "1899 hoffenheim": "tsg",
    "bayer 04 leverkusen": "b04",
    "bor. mönchengladbach": "bmg",
    "borussia dortmund": "bvb",
    "eintracht frankfurt": "sge",
    "fc augsburg": "fca",
    "fc bayern münchen": "fcb",
    "fc st. pauli": "fcs",
    "fsv mainz 05": "m05",
    "hamburger sv": "hsv",
    "rb leipzig": "rbl",
    "sc freiburg": "scf",
    "vfb stuttgart": "vfb",
    "vfl wolfsburg": "wob",
    "werder bremen": "svw",
}


def team_abbreviation(team_name: str) -> str:
    """Abbreviation for a team name, case-insensitive.

    Unknown teams get the lowercase first letters of their first three words.
    """
    known = TEAM_ABBREVIATIONS.get(team_name.strip().lower())
    if known:
        return known
    initials = "".join(
        word[0].lower() for word in team_name.split()[:3] if word and word[0].isalpha()
    )
    return initials or "unknown"
