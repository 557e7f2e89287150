import re


def to_camel_case(value: str) -> str:
    if not value:
        return ""
    head, *rest = [part for part in value.split("_") if part]
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_title_case(value: str) -> str:
    if not value:
        return ""
    parts = re.split(r"[_\s]+", value)
    filtered = [part for part in parts if part]
    return " ".join(part[:1].upper() + part[1:].lower() for part in filtered)
