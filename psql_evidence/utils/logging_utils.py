import logging
import traceback

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"


def exc_to_text(e: BaseException) -> str:
    # works outside of an except block too; the paginator hands errors over as values
    return "".join(traceback.format_exception(type(e), e, e.__traceback__))


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )
    # the Azure SDK logs every HTTP request at INFO
    logging.getLogger("azure").setLevel(logging.WARNING)
