def split_name(name: str) -> tuple[str, list[str]]:
    """
    Splits a free-text name into (family, given). The family name is the last
    whitespace-delimited token; everything before it is given names.
    """
    parts = name.split()
    if len(parts) == 0:
        return "", []

    return parts[-1], parts[:-1]


def traits_match(
    family: str,
    given: list[str],
    birth_date: str,
    registered_name: str,
    registered_birth_date: str,
) -> bool:
    """
    Deterministic demographic match: exact birth date, case-insensitive family name and
    case-insensitive first given name. Middle names, honorifics and punctuation are
    compared as-is.
    """
    if birth_date != registered_birth_date:
        return False

    registered_family, registered_given = split_name(registered_name)
    if family.lower() != registered_family.lower():
        return False

    if len(given) == 0 or len(registered_given) == 0:
        return False

    return given[0].lower() == registered_given[0].lower()


def name_matches(name: str, birth_date: str, registered_name: str, registered_birth_date: str) -> bool:
    family, given = split_name(name)
    return traits_match(family, given, birth_date, registered_name, registered_birth_date)
