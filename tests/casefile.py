"""Reader for the `.tests` case files shared by the data-driven suites.

    === case name
    input lines
    ---
    expected lines
    ---
"""

from pathlib import Path


def read_cases(path: Path) -> list[tuple[str, list[str], list[str]]]:
    """Split a .tests file into (name, input_lines, expected_lines)."""
    lines = path.read_text(encoding="utf-8").split("\n")
    cases: list[tuple[str, list[str], list[str]]] = []
    i = 0
    while i < len(lines):
        if not lines[i].startswith("=== "):
            i += 1
            continue
        name = lines[i][4:].strip()
        i += 1
        sections: list[list[str]] = []
        for _ in range(2):
            section: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                section.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            sections.append(section)
        cases.append((name, sections[0], sections[1]))
    return cases


def discover(directory: Path) -> list[tuple[str, list[str], list[str]]]:
    """All cases under directory, with ids of the form `file-stem/case-name`."""
    found = []
    for case_file in sorted(directory.glob("*.tests")):
        for name, input_lines, expected_lines in read_cases(case_file):
            found.append((f"{case_file.stem}/{name}", input_lines, expected_lines))
    return found
