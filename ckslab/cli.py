import logging
import sys

import typer

from ckslab.commands import create, destroy, status
from ckslab.logging import setup_logging

app = typer.Typer(
    help="Disposable kubeadm cluster on Multipass VMs for CKS practice.",
    context_settings={"help_option_names": ["-h", "--help"]},
    no_args_is_help=True,
)

# Global debug flag
debug_mode = False

app.command("create")(create.create_cluster_cmd)
app.command("destroy")(destroy.destroy_cluster_cmd)
app.command("status")(status.status_cluster_cmd)


# Global options callback
@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Enable debug logging"),
):
    """ckslab - CKS practice cluster manager."""
    global debug_mode
    debug_mode = debug
    setup_logging(debug)
    if debug:
        logging.debug("Debug mode enabled")


def run():
    try:
        app()
    except Exception as e:
        if debug_mode:
            logging.exception(f"Unhandled exception: {e}")
        else:
            logging.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
