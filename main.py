from __future__ import annotations

from fastapi import FastAPI

from parley.app.api.app import create_app

app = create_app()


def mount_chat_interface(application: FastAPI) -> None:
    from chainlit.utils import mount_chainlit

    mount_chainlit(
        app=application,
        target="parley/ui_chainlit/app.py",
        path="/chainlit",
    )


mount_chat_interface(app)
