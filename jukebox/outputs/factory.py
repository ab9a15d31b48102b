from jukebox.config import JukeboxConfig
from .base_output import OutputCapability
from .null_output import NullOutput
from .ffplay_output import FFplayOutput


def create_output(config: JukeboxConfig) -> OutputCapability:
    """
    Create an output capability based on configuration.

    Modes:
        "null": discard audio; tracks play until stopped (default)
        "ffplay": play through the local audio device

    Returns:
        OutputCapability instance configured according to config.output_mode
    """
    if config.output_mode == "ffplay":
        return FFplayOutput()

    # Default: discard audio, engine logic still runs
    return NullOutput()
