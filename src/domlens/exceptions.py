class DomLensException(Exception):
    pass


class DomTreeBuildError(DomLensException):
    """The page could not be captured, so no tree was built (e.g. navigation mid-capture)."""


class UnknownHighlightIndexError(DomLensException):
    def __init__(self, index: int) -> None:
        super().__init__(f"No element with highlight index {index} in the latest DOM tree")
        self.index = index
