from __future__ import annotations

import click
from flask import Flask

from giftops.application.user_service import UserService
from giftops.db import get_db
from giftops.errors import AppError
from giftops.policies import VALID_ROLES, normalize_role


def register_user_cli(app: Flask) -> None:
    @app.cli.group("users")
    def users_group() -> None:
        """Account administration."""

    @users_group.command("create")
    @click.option("--email", required=True)
    @click.option("--password", required=True, prompt=True, hide_input=True, confirmation_prompt=True)
    @click.option("--role", default="Admin", show_default=True, help=f"One of: {', '.join(sorted(VALID_ROLES))}.")
    @click.option("--display-name", default=None)
    def users_create(email: str, password: str, role: str, display_name: str | None) -> None:
        canonical = normalize_role(role)
        if not canonical:
            raise click.BadParameter(f"unknown role {role!r}", param_hint="--role")
        try:
            user = UserService().create_user(
                get_db(),
                email=email,
                password=password,
                role=canonical,
                display_name=display_name,
                status="approved",
            )
        except AppError as exc:
            raise click.ClickException(f"{exc.code}: {exc.user_message()}") from exc
        click.echo(f"Created {user['role']} {user['email']} ({user['uid']}).")
