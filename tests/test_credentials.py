"""Tests for session credentials and credential resolution."""

import threading

import pytest

from gei_migrate.auth.credentials import NOT_CONFIGURED, CredentialResolver
from gei_migrate.auth.sessions import (
    SessionCredentialRegistry,
    credentials_from_request,
)
from gei_migrate.exceptions import ConfigurationMissingError, SessionNotFoundError
from gei_migrate.models.credentials import CredentialKind, SessionCredentials


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestCredentialsFromRequest:
    """Test parsing credentials off a connection."""

    def test_headers(self):
        creds = credentials_from_request(
            headers={'X-GH-Source-PAT': 'src', 'X-GH-PAT': 'tgt', 'X-ADO-PAT': 'ado'}
        )

        assert creds.github_source_pat == 'src'
        assert creds.github_target_pat == 'tgt'
        assert creds.ado_pat == 'ado'

    def test_header_names_are_case_insensitive(self):
        creds = credentials_from_request(headers={'x-gh-pat': 'tgt'})

        assert creds.github_target_pat == 'tgt'

    def test_query_fallback(self):
        creds = credentials_from_request(query={'GH_SOURCE_PAT': 'from-query'})

        assert creds.github_source_pat == 'from-query'
        assert creds.github_target_pat is None

    def test_header_wins_over_query(self):
        creds = credentials_from_request(
            headers={'X-GH-PAT': 'from-header'}, query={'GH_PAT': 'from-query'}
        )

        assert creds.github_target_pat == 'from-header'

    def test_empty_values_are_absent(self):
        creds = credentials_from_request(headers={'X-ADO-PAT': ''}, query={})

        assert creds.ado_pat is None


class TestSessionCredentialRegistry:
    """Test the session credential registry."""

    def setup_method(self):
        self.clock = FakeClock()
        self.registry = SessionCredentialRegistry(clock=self.clock)

    def test_open_get_close(self):
        self.registry.open('s1', SessionCredentials(github_target_pat='tok'))

        assert self.registry.count() == 1
        assert self.registry.get('s1').github_target_pat == 'tok'

        self.registry.close('s1')

        assert self.registry.get('s1') is None
        assert self.registry.count() == 0

    def test_get_unknown_or_missing_session(self):
        assert self.registry.get('nope') is None
        assert self.registry.get(None) is None

    def test_require_unknown_session(self):
        with pytest.raises(SessionNotFoundError) as exc_info:
            self.registry.require('nope')

        assert exc_info.value.to_result()['kind'] == 'not_found'

    def test_close_unknown_session_is_ignored(self):
        self.registry.close('nope')

        assert self.registry.count() == 0

    def test_get_returns_copy(self):
        self.registry.open('s1', SessionCredentials(github_target_pat='tok'))

        creds = self.registry.get('s1')
        creds.github_target_pat = 'changed'

        assert self.registry.get('s1').github_target_pat == 'tok'

    def test_open_rejects_empty_id(self):
        with pytest.raises(ValueError):
            self.registry.open('', SessionCredentials())

    def test_session_context_closes_on_error(self):
        with pytest.raises(RuntimeError):
            with self.registry.session('s1', SessionCredentials(ado_pat='a')):
                assert self.registry.count() == 1
                raise RuntimeError('connection dropped')

        assert self.registry.count() == 0

    def test_reap_idle(self):
        self.registry.open('old', SessionCredentials())
        self.clock.now = 100.0
        self.registry.open('new', SessionCredentials())

        reaped = self.registry.reap_idle(50.0)

        assert reaped == ['old']
        assert self.registry.session_ids() == ['new']

    def test_access_refreshes_idle_timer(self):
        self.registry.open('s1', SessionCredentials())
        self.clock.now = 100.0
        self.registry.get('s1')

        assert self.registry.reap_idle(50.0) == []

    def test_concurrent_sessions_do_not_interfere(self):
        def worker(n):
            sid = f's{n}'
            for _ in range(50):
                self.registry.open(sid, SessionCredentials(github_target_pat=sid))
                assert self.registry.get(sid).github_target_pat == sid
                self.registry.close(sid)
            self.registry.open(sid, SessionCredentials(github_target_pat=sid))

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert self.registry.count() == 8
        for n in range(8):
            assert self.registry.get(f's{n}').github_target_pat == f's{n}'


class TestCredentialResolver:
    """Test credential resolution order."""

    def setup_method(self):
        self.registry = SessionCredentialRegistry()
        self.env = {}
        self.resolver = CredentialResolver(self.registry, environ=self.env)

    def test_session_value_first(self):
        self.registry.open('S1', SessionCredentials(github_source_pat='tok-A'))
        self.env['GH_SOURCE_PAT'] = 'env-token'

        assert self.resolver.resolve(CredentialKind.GITHUB_SOURCE, 'S1') == 'tok-A'

    def test_session_isolation(self):
        self.registry.open('S1', SessionCredentials(github_source_pat='tok-A'))

        assert self.resolver.resolve(CredentialKind.GITHUB_SOURCE, 'S1') == 'tok-A'
        with pytest.raises(ConfigurationMissingError) as exc_info:
            self.resolver.resolve(CredentialKind.GITHUB_SOURCE, 'S2')

        assert 'GH_SOURCE_PAT' in str(exc_info.value)
        assert exc_info.value.header == 'X-GH-Source-PAT'
        assert exc_info.value.query_param == 'GH_SOURCE_PAT'
        assert 'GH_SOURCE_PAT' in exc_info.value.env_vars

    def test_other_session_falls_through_to_environment(self):
        self.registry.open('S1', SessionCredentials(github_target_pat='tok-A'))
        self.env['GH_PAT'] = 'env-target'

        assert self.resolver.resolve(CredentialKind.GITHUB_TARGET, 'S2') == 'env-target'

    def test_source_env_order(self):
        self.env['GITHUB_TOKEN'] = 'shared'
        assert self.resolver.resolve(CredentialKind.GITHUB_SOURCE) == 'shared'

        self.env['GH_SOURCE_PAT'] = 'source'
        assert self.resolver.resolve(CredentialKind.GITHUB_SOURCE) == 'source'

    def test_target_env_order(self):
        self.env['GITHUB_TOKEN'] = 'shared'
        assert self.resolver.resolve(CredentialKind.GITHUB_TARGET) == 'shared'

        self.env['GH_PAT'] = 'target'
        assert self.resolver.resolve(CredentialKind.GITHUB_TARGET) == 'target'

    def test_ado_does_not_use_shared_token(self):
        self.env['GITHUB_TOKEN'] = 'shared'

        with pytest.raises(ConfigurationMissingError) as exc_info:
            self.resolver.resolve(CredentialKind.ADO)

        assert exc_info.value.env_vars == ['ADO_PAT']

    def test_ado_sentinel_is_absent(self):
        self.env['ADO_PAT'] = NOT_CONFIGURED

        with pytest.raises(ConfigurationMissingError):
            self.resolver.resolve(CredentialKind.ADO)

    def test_ado_sentinel_in_session_falls_back(self):
        self.registry.open('S1', SessionCredentials(ado_pat=NOT_CONFIGURED))
        self.env['ADO_PAT'] = 'real'

        assert self.resolver.resolve(CredentialKind.ADO, 'S1') == 'real'

    def test_missing_error_result(self):
        with pytest.raises(ConfigurationMissingError) as exc_info:
            self.resolver.resolve(CredentialKind.GITHUB_TARGET)

        result = exc_info.value.to_result()
        assert result['kind'] == 'configuration_missing'
        assert result['header'] == 'X-GH-PAT'
        assert result['env_vars'] == ['GH_PAT', 'GITHUB_TOKEN']

    def test_check_prerequisites(self):
        self.registry.open('S1', SessionCredentials(github_target_pat='t'))
        self.env['GH_SOURCE_PAT'] = 's'

        report = self.resolver.check_prerequisites('S1')

        assert report.ready is True
        assert report.session_based is True
        assert report.ado is False
        assert len(report.details) == 1
        assert 'ADO_PAT' in report.details[0]

    def test_check_prerequisites_without_anything(self):
        report = self.resolver.check_prerequisites()

        assert report.ready is False
        assert report.session_based is False
        assert len(report.details) == 3

    def test_credentials_repr_hides_secrets(self):
        creds = SessionCredentials(github_source_pat='super-secret')

        assert 'super-secret' not in repr(creds)
        assert 'super-secret' not in str(creds)
