"""
Commands - Destructive commands behind the protected command gate.

Each command exposes an ``action`` coroutine that does the work and an
``outputs_schema`` describing its result. Callers go through
:meth:`Command.run`, which refuses to start a protected command until it
has been confirmed, either by the ``yes``/``force`` option or by an
interactive prompt. An unconfirmed command invokes no handler and changes
no state.
"""

import logging
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import click
from tabulate import tabulate

from errors import NotConfirmedError, NotFoundError, ParameterError, SchemaViolationError
from schemas import (
    DELETE_ENVIRONMENT_RESULT_SCHEMA,
    DELETE_SECRET_RESULT_SCHEMA,
    SERVICE_STATUS_MAP_SCHEMA,
    EnvironmentStatus,
    ServiceStatus,
)
from validation import validate_against_schema

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[str], bool]


@dataclass
class CommandResult:
    """Result of a command execution."""

    result: Any = None
    errors: List[Exception] = field(default_factory=list)


def prompt_confirmation(message: str) -> bool:
    """
    Ask the user to confirm on the terminal.

    Declines without prompting when stdin is not interactive.
    """
    if not sys.stdin.isatty():
        logger.warning("Cannot prompt for confirmation: stdin is not a terminal")
        return False
    return click.confirm(message, default=False)


def render_service_statuses(statuses: Dict[str, ServiceStatus]) -> str:
    """Render service statuses as a table for the command footer."""
    rows = []
    for name, status in statuses.items():
        ingresses = status.get("ingresses") or []
        rows.append(
            [
                name,
                status["state"],
                ", ".join(f"{i['hostname']}{i['path']}" for i in ingresses) or "-",
            ]
        )
    return tabulate(rows, headers=["Service", "State", "Ingresses"], tablefmt="grid")


def render_provider_statuses(statuses: Dict[str, EnvironmentStatus]) -> str:
    """Render provider environment statuses as a table."""
    rows = [
        [name, "✓" if status["ready"] else "✗"] for name, status in statuses.items()
    ]
    return tabulate(rows, headers=["Provider", "Ready"], tablefmt="grid")


class Command(ABC):
    """
    Base class for commands exposed to the command line layer.

    Attributes:
        name: Command name as typed by the user
        help: One-line description
        protected: Whether the command requires confirmation
        arguments: Positional argument names mapped to (required, help)
    """

    name: str = ""
    help: str = ""
    protected: bool = False
    arguments: Dict[str, tuple] = {}

    @abstractmethod
    def outputs_schema(self) -> Dict[str, Any]:
        """JSON Schema of the command's result."""
        pass

    @abstractmethod
    async def action(
        self, garden: Any, args: Dict[str, Any], opts: Dict[str, Any]
    ) -> CommandResult:
        """
        Execute the command.

        Args:
            garden: The Garden to operate on
            args: Positional arguments by name
            opts: Options by name

        Returns:
            CommandResult whose ``result`` matches :meth:`outputs_schema`
        """
        pass

    def confirmation_message(self, garden: Any, args: Dict[str, Any]) -> str:
        """Question asked before running a protected command."""
        return (
            f"Command '{self.name}' is protected. Run it against environment "
            f"{garden.environment_name}?"
        )

    def check_confirmed(
        self,
        garden: Any,
        args: Dict[str, Any],
        opts: Dict[str, Any],
        confirm: Optional[ConfirmCallback] = None,
    ) -> None:
        """
        Ensure a protected command may run.

        Raises:
            NotConfirmedError: If neither the ``yes``/``force`` option was set
                nor the prompt was accepted
        """
        if not self.protected or opts.get("yes") or opts.get("force"):
            return

        confirm = confirm or prompt_confirmation
        if not confirm(self.confirmation_message(garden, args)):
            raise NotConfirmedError(
                f"Command '{self.name}' was not confirmed. "
                f"Pass --yes to run it without prompting.",
                detail={"command": self.name},
            )

    def _check_arguments(self, args: Dict[str, Any]) -> None:
        missing = [
            name
            for name, (required, _) in self.arguments.items()
            if required and not args.get(name)
        ]
        if missing:
            raise ParameterError(
                f"Missing required argument(s) for '{self.name}': {', '.join(missing)}",
                detail={"command": self.name, "missing": missing},
            )

    async def run(
        self,
        garden: Any,
        args: Optional[Dict[str, Any]] = None,
        opts: Optional[Dict[str, Any]] = None,
        confirm: Optional[ConfirmCallback] = None,
    ) -> CommandResult:
        """
        Run the command behind the confirmation gate.

        Args:
            garden: The Garden to operate on
            args: Positional arguments by name
            opts: Options by name; ``yes`` or ``force`` skip the prompt
            confirm: Prompt used when confirmation is needed

        Returns:
            The validated CommandResult
        """
        args = args or {}
        opts = opts or {}

        self._check_arguments(args)
        self.check_confirmed(garden, args, opts, confirm)

        logger.debug(f"Running command '{self.name}' with args {args}")
        command_result = await self.action(garden, args, opts)

        is_valid, error = validate_against_schema(
            command_result.result, self.outputs_schema()
        )
        if not is_valid:
            raise SchemaViolationError(
                f"Result of command '{self.name}' does not match its schema: {error}",
                detail={"command": self.name, "errors": error},
            )
        return command_result


class DeleteSecretCommand(Command):
    """Delete a secret from a provider."""

    name = "delete-secret"
    help = "Delete a secret from the environment."
    protected = True
    arguments = {
        "provider": (True, "The name of the provider to remove the secret from."),
        "key": (True, "The key of the secret to delete."),
    }

    def outputs_schema(self) -> Dict[str, Any]:
        return DELETE_SECRET_RESULT_SCHEMA

    def confirmation_message(self, garden: Any, args: Dict[str, Any]) -> str:
        return (
            f"Delete secret '{args.get('key')}' from provider "
            f"{args.get('provider')} in environment {garden.environment_name}?"
        )

    async def action(
        self, garden: Any, args: Dict[str, Any], opts: Dict[str, Any]
    ) -> CommandResult:
        provider = args["provider"]
        key = args["key"]

        result = await garden.get_action_router().delete_secret(provider, key)

        if not result.get("found"):
            raise NotFoundError(
                f"Could not find secret '{key}' for provider {provider}",
                detail={"provider": provider, "key": key},
            )

        logger.info(f"Deleted secret '{key}' from {provider}")
        return CommandResult(result=result)


class DeleteEnvironmentCommand(Command):
    """Delete all services and clean up every provider of the environment."""

    name = "delete-environment"
    help = "Delete all services and tear down the environment for every provider."
    protected = True

    def outputs_schema(self) -> Dict[str, Any]:
        return DELETE_ENVIRONMENT_RESULT_SCHEMA

    def confirmation_message(self, garden: Any, args: Dict[str, Any]) -> str:
        return (
            f"Delete every service and clean up environment "
            f"{garden.environment_name} for providers {', '.join(garden.providers)}?"
        )

    async def action(
        self, garden: Any, args: Dict[str, Any], opts: Dict[str, Any]
    ) -> CommandResult:
        logger.info(f"Deleting environment {garden.environment_name}")

        result = await garden.get_dispatcher().delete_environment()

        logger.info("\n" + render_service_statuses(result["serviceStatuses"]))
        logger.info("\n" + render_provider_statuses(result["providerStatuses"]))
        return CommandResult(result=result)


class DeleteServiceCommand(Command):
    """Delete one or more services, or every service if none are named."""

    name = "delete-service"
    help = "Delete running services."
    protected = True
    arguments = {
        "services": (False, "The name(s) of the services to delete. Deletes all if omitted."),
    }

    def outputs_schema(self) -> Dict[str, Any]:
        return SERVICE_STATUS_MAP_SCHEMA

    def confirmation_message(self, garden: Any, args: Dict[str, Any]) -> str:
        names = args.get("services") or garden.list_service_names()
        return (
            f"Delete service(s) {', '.join(names)} in environment "
            f"{garden.environment_name}?"
        )

    async def action(
        self, garden: Any, args: Dict[str, Any], opts: Dict[str, Any]
    ) -> CommandResult:
        names = args.get("services")
        services = garden.get_services(names)

        if not services:
            logger.warning("No services found. Aborting.")
            return CommandResult(result={})

        result = await garden.get_dispatcher().delete_services(
            [s.name for s in services]
        )

        logger.info("\n" + render_service_statuses(result))
        return CommandResult(result=result)
