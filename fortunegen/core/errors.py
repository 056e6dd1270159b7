class FortuneGenError(Exception):
    """Base class for every error raised by the generator."""


class ConfigError(FortuneGenError):
    """Missing credential, unknown model or invalid request. Fatal."""


class AuthError(FortuneGenError):
    """Caller is not allowed to generate content. Fatal."""


class GenerationError(FortuneGenError):
    """The text generator returned a non-success response. Recovered per attempt."""


class ParseError(FortuneGenError):
    """The generator answered, but not with a JSON array of items. Recovered per attempt."""


class SemanticJudgeError(FortuneGenError):
    """The duplicate judge could not produce a YES/NO answer."""


class PersistenceError(FortuneGenError):
    """Accepted items could not be read from or written to the store. Fatal for the run."""
