from . import events  # noqa
