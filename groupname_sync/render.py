PLACEHOLDER = "{count}"


def reverse_digits(count: int) -> str:
    """
    Reverse the decimal digits of a count as text.
    120 becomes "021"; the leading zero is kept on purpose.
    """
    if count < 0:
        raise ValueError(f"Member count cannot be negative: {count}")
    return str(count)[::-1]


def has_placeholder(template: str) -> bool:
    return PLACEHOLDER in template


def render_name(template: str, count: int) -> str:
    """
    Substitute the reversed count into the first {count} of the template.
    A template without the placeholder comes back unchanged.
    """
    return template.replace(PLACEHOLDER, reverse_digits(count), 1)


def should_update(current_name: str, rendered_name: str) -> bool:
    return current_name != rendered_name
