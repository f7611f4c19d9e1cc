class LocTranslateError(Exception):
    pass


class TranslationError(LocTranslateError):
    pass


class ConfigError(LocTranslateError, ValueError):
    pass
