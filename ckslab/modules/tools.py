"""CKS practice tools installed on the primary node.

Each tool's install script is a Jinja2 template under ``templates/tools``,
rendered with ``StrictUndefined`` and piped through ``bash -c`` on the VM.
"""
import logging
import os
import subprocess
from dataclasses import dataclass, field
from typing import Any, Dict, List

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError
from rich.console import Console

from .errors import ToolInstallError
from .models import Node, StepResult

logger = logging.getLogger("ckslab.tools")


@dataclass(frozen=True)
class Tool:
    """A third-party package and the script that installs it."""
    name: str
    template: str
    context: Dict[str, Any] = field(default_factory=dict)
    usage: str = ''


TOOLS: List[Tool] = [
    Tool(
        name="Trivy",
        template="apt_repository.sh.j2",
        context={
            "key_url": "https://aquasecurity.github.io/trivy-repo/deb/public.key",
            "keyring": "/usr/share/keyrings/trivy.gpg",
            "repository": "https://aquasecurity.github.io/trivy-repo/deb generic main",
            "list_name": "trivy",
            "package": "trivy",
            "environment": {},
        },
        usage="trivy image nginx:latest    # Scan container images",
    ),
    Tool(
        name="kube-bench",
        template="kube_bench.sh.j2",
        context={"version": "0.7.1"},
        usage="sudo kube-bench             # Run CIS benchmark",
    ),
    Tool(
        name="Falco",
        template="apt_repository.sh.j2",
        context={
            "key_url": "https://falco.org/repo/falcosecurity-packages.asc",
            "keyring": "/usr/share/keyrings/falco-archive-keyring.gpg",
            "repository": "https://download.falco.org/packages/deb stable main",
            "list_name": "falcosecurity",
            "package": "falco",
            "environment": {"FALCO_FRONTEND": "noninteractive", "DEBIAN_FRONTEND": "noninteractive"},
        },
        usage="sudo systemctl start falco  # Start Falco runtime security",
    ),
]


def get_template_path() -> str:
    """Get the absolute path to the tool script templates."""
    return os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), 'templates', 'tools')


def render_script(tool: Tool) -> str:
    env = Environment(
        loader=FileSystemLoader(get_template_path()),
        trim_blocks=True,
        lstrip_blocks=True,
        undefined=StrictUndefined,
        keep_trailing_newline=True,
    )
    return env.get_template(tool.template).render(**tool.context)


def install_tools(
    backend,
    primary: Node,
    console: Console,
    strict: bool = False,
    tools: List[Tool] = TOOLS,
) -> List[StepResult]:
    """Install every tool on the primary node.

    Tools are independent, so by default a failure is recorded and the next
    tool is still attempted. With ``strict`` the first failure aborts.

    Raises:
        ToolInstallError: In strict mode, on the first failed tool
    """
    logger.info("🛠 Installing CKS practice tools...")
    results = []
    for tool in tools:
        console.print(f"  [cyan]{tool.name}[/cyan]: installing...")
        try:
            script = render_script(tool)
            backend.exec(primary.name, ["bash", "-c", script])
        except (subprocess.CalledProcessError, TemplateError) as e:
            detail = f"exit code {e.returncode}" if isinstance(e, subprocess.CalledProcessError) else str(e)
            if strict:
                raise ToolInstallError(f"Failed to install {tool.name}: {detail}") from e
            logger.warning(f"⚠️  {tool.name} installation failed: {detail}")
            console.print(f"  [cyan]{tool.name}[/cyan]: [red]✗ failed[/red]")
            results.append(StepResult(tool.name, False, detail))
            continue
        console.print(f"  [cyan]{tool.name}[/cyan]: [green]✓ installed[/green]")
        results.append(StepResult(tool.name, True, "installed"))

    if all(r.ok for r in results):
        logger.info("✅ CKS tools installed")
    return results
