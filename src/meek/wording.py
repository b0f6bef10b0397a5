from typing import List


def pluralise(word: str, count: int) -> str:
    if count == 1:
        return word

    if word == "is":
        return "are"
    elif word == "has":
        return "have"
    else:
        return f"{word}s"


def join_list(items: List[str]) -> str:
    """
    Join items into readable English.

    ``["A", "B", "C"]`` becomes ``"A, B, and C"``. If any item contains a
    comma, items are separated by semicolons instead.
    """
    items = [str(item) for item in items]
    if not items:
        return ""
    if len(items) == 1:
        return items[0]
    if len(items) == 2:
        return " and ".join(items)

    separator = ";" if any("," in item for item in items) else ","
    return f"{(separator + ' ').join(items[:-1])}{separator} and {items[-1]}"
