#!/usr/bin/env python3
"""
Mail Backup Configuration

Loads the Azure app registration settings used for the device code flow.
Values come from environment variables (optionally from a .env file) or
from an ``app.*`` properties mapping.
"""

import os
from typing import List, Mapping, Optional

from dotenv import load_dotenv

from exceptions import ConfigError


DEFAULT_OUTPUT_DIR = "."

# Property names understood by from_properties()
PROPERTY_KEYS = {
    'client_id': 'app.clientId',
    'tenant_id': 'app.tenantId',
    'graph_user_scopes': 'app.graphUserScopes',
}


def parse_scopes(raw_scopes: Optional[str]) -> List[str]:
    """Split a comma-separated scope list, dropping blank entries"""
    if not raw_scopes:
        return []
    return [scope.strip() for scope in raw_scopes.split(',') if scope.strip()]


class MailBackupConfig:
    """Handles configuration validation for the Graph device code flow"""

    REQUIRED_VARS = ['CLIENT_ID', 'TENANT_ID', 'GRAPH_USER_SCOPES']

    def __init__(self, client_id: Optional[str] = None, tenant_id: Optional[str] = None,
                 graph_user_scopes: Optional[List[str]] = None,
                 output_dir: str = DEFAULT_OUTPUT_DIR, token_cache_file: Optional[str] = None):
        self.client_id = client_id
        self.tenant_id = tenant_id
        self.graph_user_scopes: List[str] = list(graph_user_scopes or [])
        self.output_dir = output_dir
        self.token_cache_file = token_cache_file

    def validate_environment(self) -> None:
        """
        Load settings from the environment (and .env file) and validate them.

        Raises:
            ConfigError: If any required variable is missing or blank
        """
        load_dotenv()

        missing_vars = []
        for var in self.REQUIRED_VARS:
            value = os.getenv(var)
            if not value or value.strip() == '':
                missing_vars.append(var)

        if missing_vars:
            print(f"Error: Missing required environment variables: {', '.join(missing_vars)}")
            print("Please ensure your .env file contains:")
            for var in missing_vars:
                print(f"  {var}=your_value_here")
            raise ConfigError(f"Missing required environment variables: {', '.join(missing_vars)}")

        self.client_id = os.getenv('CLIENT_ID').strip()
        self.tenant_id = os.getenv('TENANT_ID').strip()
        self.graph_user_scopes = parse_scopes(os.getenv('GRAPH_USER_SCOPES'))
        self.output_dir = os.getenv('OUTPUT_DIR', '').strip() or DEFAULT_OUTPUT_DIR
        self.token_cache_file = os.getenv('TOKEN_CACHE_FILE', '').strip() or None

        self.validate()
        print(f"Configuration validated successfully for tenant {self.tenant_id}")

    @classmethod
    def from_properties(cls, properties: Optional[Mapping[str, str]]) -> 'MailBackupConfig':
        """
        Build a config from ``app.clientId``/``app.tenantId``/``app.graphUserScopes`` properties.

        Raises:
            ConfigError: If properties is None or a required key is missing
        """
        if properties is None:
            raise ConfigError("Properties cannot be None")

        config = cls(
            client_id=(properties.get(PROPERTY_KEYS['client_id']) or '').strip() or None,
            tenant_id=(properties.get(PROPERTY_KEYS['tenant_id']) or '').strip() or None,
            graph_user_scopes=parse_scopes(properties.get(PROPERTY_KEYS['graph_user_scopes'])),
        )
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigError unless client id, tenant id and at least one scope are set"""
        missing = []
        if not self.client_id:
            missing.append('client id')
        if not self.tenant_id:
            missing.append('tenant id')
        if not self.graph_user_scopes:
            missing.append('graph user scopes')
        if missing:
            raise ConfigError(f"Incomplete configuration, missing: {', '.join(missing)}")

    @property
    def authority(self) -> str:
        return f"https://login.microsoftonline.com/{self.tenant_id}"
