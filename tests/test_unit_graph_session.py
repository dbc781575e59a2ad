#!/usr/bin/env python3
"""
Unit tests for GraphSession device code authentication
"""

import unittest
import tempfile
import shutil
from unittest.mock import Mock, patch

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
from exceptions import AuthError, ConfigError, NotInitializedError
from graph_session import ConsoleChallengeHandler, DeviceCodeInfo, GraphSession
from mail_config import MailBackupConfig


DEVICE_FLOW = {
    "user_code": "ABCD1234",
    "device_code": "device-code",
    "verification_uri": "https://microsoft.com/devicelogin",
    "expires_in": 900,
    "message": "To sign in, use a web browser to open https://microsoft.com/devicelogin and enter ABCD1234",
}


class TestGraphSession(unittest.TestCase):
    """Test session initialization and token acquisition"""

    def setUp(self):
        self.config = MailBackupConfig(
            client_id='client-123',
            tenant_id='common',
            graph_user_scopes=['user.read', 'mail.read'],
        )
        self.handler = Mock()

        patcher = patch('graph_session.msal.PublicClientApplication')
        self.mock_app_class = patcher.start()
        self.addCleanup(patcher.stop)
        self.mock_app = self.mock_app_class.return_value
        self.mock_app.get_accounts.return_value = []

        self.session = GraphSession()

    def test_not_initialized(self):
        """Test get_token before initialize raises NotInitializedError"""
        self.assertFalse(self.session.is_initialized)
        with self.assertRaises(NotInitializedError):
            self.session.get_token()

    def test_initialize_with_none_config(self):
        """Test None config raises ConfigError"""
        with self.assertRaises(ConfigError):
            self.session.initialize(None, self.handler)
        self.assertFalse(self.session.is_initialized)

    def test_initialize_with_incomplete_config(self):
        """Test incomplete config raises ConfigError"""
        with self.assertRaises(ConfigError):
            self.session.initialize(MailBackupConfig(client_id='client-123'), self.handler)
        self.mock_app_class.assert_not_called()

    def test_initialize_builds_public_client(self):
        """Test initialize creates an MSAL public client for the tenant authority"""
        self.session.initialize(self.config, self.handler)

        self.assertTrue(self.session.is_initialized)
        self.mock_app_class.assert_called_once_with(
            client_id='client-123',
            authority='https://login.microsoftonline.com/common',
            token_cache=None
        )

    def test_device_code_flow(self):
        """Test device flow calls the challenge handler and returns the token"""
        self.mock_app.initiate_device_flow.return_value = DEVICE_FLOW
        self.mock_app.acquire_token_by_device_flow.return_value = {"access_token": "token-abc"}
        self.session.initialize(self.config, self.handler)

        with patch('builtins.print'):
            token = self.session.get_token()

        self.assertEqual(token, "token-abc")
        self.mock_app.initiate_device_flow.assert_called_once_with(scopes=['user.read', 'mail.read'])
        self.handler.assert_called_once()
        info = self.handler.call_args[0][0]
        self.assertIsInstance(info, DeviceCodeInfo)
        self.assertEqual(info.user_code, "ABCD1234")
        self.assertEqual(info.verification_uri, "https://microsoft.com/devicelogin")
        self.assertEqual(info.expires_in, 900)

    def test_silent_token_from_cache(self):
        """Test cached account is used without a device flow"""
        self.mock_app.get_accounts.return_value = [{"username": "me@example.com"}]
        self.mock_app.acquire_token_silent.return_value = {"access_token": "cached-token"}
        self.session.initialize(self.config, self.handler)

        token = self.session.get_token()

        self.assertEqual(token, "cached-token")
        self.mock_app.initiate_device_flow.assert_not_called()
        self.handler.assert_not_called()

    def test_silent_failure_falls_back_to_device_flow(self):
        """Test device flow runs when silent acquisition returns nothing"""
        self.mock_app.get_accounts.return_value = [{"username": "me@example.com"}]
        self.mock_app.acquire_token_silent.return_value = None
        self.mock_app.initiate_device_flow.return_value = DEVICE_FLOW
        self.mock_app.acquire_token_by_device_flow.return_value = {"access_token": "fresh-token"}
        self.session.initialize(self.config, self.handler)

        with patch('builtins.print'):
            token = self.session.get_token()

        self.assertEqual(token, "fresh-token")
        self.handler.assert_called_once()

    def test_device_flow_creation_failure(self):
        """Test flow without user code raises AuthError"""
        self.mock_app.initiate_device_flow.return_value = {
            "error": "invalid_client", "error_description": "AADSTS7000218"}
        self.session.initialize(self.config, self.handler)

        with self.assertRaises(AuthError) as ctx:
            self.session.get_token()

        self.assertIn("AADSTS7000218", str(ctx.exception))
        self.handler.assert_not_called()

    def test_device_flow_rejected(self):
        """Test error result from the device flow raises AuthError"""
        self.mock_app.initiate_device_flow.return_value = DEVICE_FLOW
        self.mock_app.acquire_token_by_device_flow.return_value = {
            "error": "expired_token", "error_description": "Code expired"}
        self.session.initialize(self.config, self.handler)

        with self.assertRaises(AuthError) as ctx:
            self.session.get_token()

        self.assertIn("Code expired", str(ctx.exception))


class TestGraphSessionTokenCache(unittest.TestCase):
    """Test persistent token cache loading"""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.cache_file = os.path.join(self.test_dir, "token_cache.json")

    def tearDown(self):
        if os.path.exists(self.test_dir):
            shutil.rmtree(self.test_dir)

    @patch('graph_session.msal.PublicClientApplication')
    def test_cache_file_loaded(self, mock_app_class):
        """Test existing cache file is deserialized and handed to MSAL"""
        with open(self.cache_file, 'w', encoding='utf-8') as f:
            f.write("{}")
        config = MailBackupConfig(client_id='c', tenant_id='t', graph_user_scopes=['mail.read'],
                                  token_cache_file=self.cache_file)
        session = GraphSession()

        with patch('builtins.print'):
            session.initialize(config, Mock())

        self.assertIsNotNone(session.token_cache)
        self.assertIs(mock_app_class.call_args.kwargs['token_cache'], session.token_cache)


class TestConsoleChallengeHandler(unittest.TestCase):
    """Test console rendering of the device code challenge"""

    def setUp(self):
        self.info = DeviceCodeInfo.from_flow(DEVICE_FLOW)

    @patch('graph_session.webbrowser.open')
    def test_prints_code_and_url(self, mock_open):
        """Test challenge prints the code and URL without opening a browser"""
        with patch('builtins.print') as mock_print:
            ConsoleChallengeHandler()(self.info)

        printed = " ".join(str(call.args[0]) for call in mock_print.call_args_list if call.args)
        self.assertIn("ABCD1234", printed)
        self.assertIn("https://microsoft.com/devicelogin", printed)
        mock_open.assert_not_called()

    @patch('graph_session.webbrowser.open')
    def test_opens_browser(self, mock_open):
        """Test verification page is opened when requested"""
        with patch('builtins.print'):
            ConsoleChallengeHandler(open_browser=True)(self.info)

        mock_open.assert_called_once_with("https://microsoft.com/devicelogin")


if __name__ == '__main__':
    unittest.main()
