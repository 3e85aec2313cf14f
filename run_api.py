#!/usr/bin/env python3
"""Launcher script for the REST API gateway."""

import os

import uvicorn

from gsmauth.api import app, set_server_address
from gsmauth.config import Config


if __name__ == "__main__":
    config = Config()
    auth_host = os.getenv('AUTH_HOST', config.get("server", "address", "localhost"))
    if auth_host == "0.0.0.0":
        auth_host = "localhost"
    auth_port = int(os.getenv('AUTH_PORT', config.get("server", "port", 44044)))
    set_server_address(auth_host, auth_port)

    api_port = int(os.getenv('API_PORT', '8080'))
    print(f"Starting API gateway on port {api_port}")
    print(f"Auth server at {auth_host}:{auth_port}")

    uvicorn.run(app, host="0.0.0.0", port=api_port)
