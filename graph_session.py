#!/usr/bin/env python3
"""
Graph Credential Session

Wraps the MSAL device code flow for Microsoft Graph. A single GraphSession is
created at startup, initialized once, and handed to every consumer that needs
a bearer token.
"""

import os
import webbrowser
from dataclasses import dataclass
from typing import Callable, Dict, Optional

import msal

from exceptions import AuthError, ConfigError, NotInitializedError
from mail_config import MailBackupConfig


@dataclass
class DeviceCodeInfo:
    """Device code challenge the user completes on another device or browser"""
    user_code: str
    verification_uri: str
    expires_in: int
    message: str

    @classmethod
    def from_flow(cls, flow: Dict) -> 'DeviceCodeInfo':
        return cls(
            user_code=flow['user_code'],
            verification_uri=flow.get('verification_uri', ''),
            expires_in=int(flow.get('expires_in', 0)),
            message=flow.get('message', ''),
        )


ChallengeHandler = Callable[[DeviceCodeInfo], None]


class ConsoleChallengeHandler:
    """Prints the device code challenge and optionally opens the verification page"""

    def __init__(self, open_browser: bool = False):
        self.open_browser = open_browser

    def __call__(self, info: DeviceCodeInfo) -> None:
        print("\n📋 Device Code Authentication:")
        print(f"   Go to: {info.verification_uri}")
        print(f"   Enter code: {info.user_code}")
        if info.expires_in:
            print(f"   Code expires in {info.expires_in // 60} minutes")
        print("   Waiting for authentication...")

        if self.open_browser:
            webbrowser.open(info.verification_uri)


class GraphSession:
    """Holds the MSAL public client and produces access tokens on demand"""

    def __init__(self):
        self.config: Optional[MailBackupConfig] = None
        self.app: Optional[msal.PublicClientApplication] = None
        self.token_cache: Optional[msal.SerializableTokenCache] = None
        self.challenge_handler: Optional[ChallengeHandler] = None

    @property
    def is_initialized(self) -> bool:
        return self.app is not None

    def initialize(self, config: Optional[MailBackupConfig], challenge_handler: ChallengeHandler) -> None:
        """
        Initialize the session for user authentication.

        Args:
            config: Validated (or validatable) configuration
            challenge_handler: Called with a DeviceCodeInfo when the user must sign in

        Raises:
            ConfigError: If config is None or incomplete
        """
        if config is None:
            raise ConfigError("Configuration cannot be None")
        config.validate()

        if config.token_cache_file:
            self.token_cache = self._load_token_cache(config.token_cache_file)

        self.app = msal.PublicClientApplication(
            client_id=config.client_id,
            authority=config.authority,
            token_cache=self.token_cache
        )
        self.config = config
        self.challenge_handler = challenge_handler

    def get_token(self) -> str:
        """
        Return a bearer token for the configured scopes.

        Uses a cached account silently when possible, otherwise runs the device
        code flow and blocks until the user completes it or the code expires.

        Raises:
            NotInitializedError: If initialize() has not been called
            AuthError: If the flow cannot start or the token request is rejected
        """
        if not self.is_initialized:
            raise NotInitializedError("Graph has not been initialized for user auth")

        scopes = self.config.graph_user_scopes

        accounts = self.app.get_accounts()
        if accounts:
            result = self.app.acquire_token_silent(scopes, account=accounts[0])
            if result and "access_token" in result:
                self._save_token_cache()
                return result["access_token"]

        flow = self.app.initiate_device_flow(scopes=scopes)
        if "user_code" not in flow:
            raise AuthError(f"Failed to create device flow: {flow.get('error_description', 'Unknown error')}")

        self.challenge_handler(DeviceCodeInfo.from_flow(flow))

        result = self.app.acquire_token_by_device_flow(flow)
        if "access_token" not in result:
            raise AuthError(f"Authentication failed: {result.get('error_description', 'Unknown error')}")

        print("✅ Authentication successful!")
        self._save_token_cache()
        return result["access_token"]

    def _load_token_cache(self, cache_file: str) -> msal.SerializableTokenCache:
        cache = msal.SerializableTokenCache()
        if os.path.exists(cache_file):
            with open(cache_file, 'r', encoding='utf-8') as f:
                cache.deserialize(f.read())
            print(f"Loaded token cache from {cache_file}")
        return cache

    def _save_token_cache(self) -> None:
        if not self.token_cache or not self.token_cache.has_state_changed:
            return
        try:
            with open(self.config.token_cache_file, 'w', encoding='utf-8') as f:
                f.write(self.token_cache.serialize())
        except OSError as e:
            print(f"⚠️ Warning: Failed to save token cache {self.config.token_cache_file}: {e}")
