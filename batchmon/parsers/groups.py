"""Parser for ``groups <user>`` output."""

from ..exceptions import ParseError


def parse_groups_output(output: str) -> list[str]:
    """Return the group names from ``alice : chem hpcusers``.

    Raises:
        ParseError: If the ``user : groups`` separator is missing
    """
    _, sep, groups = output.partition(" : ")
    if not sep:
        raise ParseError(f"Invalid output from the `groups` command: {output!r}")
    return groups.split()
