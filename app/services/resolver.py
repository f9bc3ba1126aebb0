from urllib.parse import urljoin


def resolve_link(path: str, page_url: str) -> str:
    """Return *path* made absolute against *page_url*.

    Only root-relative paths (``/icon.png``) and scheme-relative ones
    (``//cdn.example.com/icon.png``) are resolved.  Anything else, including
    directory-relative paths such as ``icon.png``, is returned unchanged.
    A malformed URL on either side also yields *path* unchanged.
    """
    if not path.startswith("/"):
        return path
    try:
        return urljoin(page_url, path)
    except ValueError:
        return path
