import logging

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str = "INFO") -> int:
    """
    Configura el logging del proceso. Un nivel desconocido se reemplaza
    por INFO con un aviso.
    """
    parsed = logging.getLevelName(str(level).upper())
    invalid = not isinstance(parsed, int)
    if invalid:
        parsed = logging.INFO

    logging.basicConfig(level=parsed, format=LOG_FORMAT)
    logging.getLogger().setLevel(parsed)

    if invalid:
        logging.getLogger(__name__).warning(
            "Invalid log level '%s', defaulting to 'info'", level
        )
    return parsed
