import pulumi

def with_suffix(base: str, suffix: str) -> str:
    # ensure we don't get "-pv-pv" if callers already appended
    return base if base.endswith(suffix) else f"{base}-{suffix}"

def owner_label() -> str:
    return f"{pulumi.get_project()}-{pulumi.get_stack()}"
