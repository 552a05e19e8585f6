class ListResponseMixin:
    """Wraps a service's ``list`` result in the paginated envelope.

    Services pass ``limit`` and ``offset`` as the last two positional
    arguments (or as keywords).
    """

    @classmethod
    def list_response(cls, db, *args, **kwargs):
        items = cls.list(db, *args, **kwargs)
        limit = kwargs.get("limit", args[-2] if len(args) >= 2 else None)
        offset = kwargs.get("offset", args[-1] if len(args) >= 1 else None)
        return {
            "items": items,
            "count": len(items),
            "limit": limit,
            "offset": offset,
        }
