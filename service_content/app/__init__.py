"""
Content subgraph.

Serves static content and a footer localized by the session's
``preferences.locale``. ``setLocale`` proposes a new preference.
"""
