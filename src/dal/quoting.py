def quote_identifier(identifier: str) -> str:
    """Return a safely quoted Postgres identifier.

    Embedded double quotes are doubled, so the result always parses as a
    single delimited identifier regardless of its contents.
    """
    if identifier is None:
        raise ValueError("identifier must not be None")
    if "\x00" in identifier:
        raise ValueError("identifier must not contain NUL characters")
    return '"' + identifier.replace('"', '""') + '"'
