"""Tests for PullRequestGateway."""

from unittest.mock import MagicMock, patch

import httpx
import pytest
from github import GithubException

from api.services.github_service import DIFF_MEDIA_TYPE, PullRequestGateway
from common.config import GitHubSettings
from common.errors import DiffFetchError, GitHubAPIError, NotFoundError, ReviewPostError
from common.models import GitHubComment

API = "https://api.github.test"

TOKEN_BODY = {
    "token": "ghs_installation_token",
    "expires_at": "2099-01-01T00:00:00Z",
    "permissions": {"pull_requests": "write"},
    "repository_selection": "all",
}


class FakeGitHub:
    """Routes httpx requests like the GitHub REST API would."""

    def __init__(self, diff="diff --git a/x b/x\n+new line\n", diff_status=200, installation_status=200):
        self.diff = diff
        self.diff_status = diff_status
        self.installation_status = installation_status
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path
        if request.method == "POST" and path.endswith("/access_tokens"):
            return httpx.Response(201, json=TOKEN_BODY)
        if path.endswith("/installation"):
            if self.installation_status != 200:
                return httpx.Response(self.installation_status, json={"message": "Not Found"})
            return httpx.Response(200, json={"id": 42, "account": {"login": "octo"}})
        if "/pulls/" in path:
            return httpx.Response(self.diff_status, text=self.diff)
        return httpx.Response(404, json={"message": "Not Found"})

    def paths(self) -> list[str]:
        return [r.url.path for r in self.requests]


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def make_gateway(credentials, github_settings):
    def _make(handler, settings: GitHubSettings = github_settings):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return PullRequestGateway(credentials, settings, http_client=client)

    return _make


@pytest.fixture
def mock_github_cls():
    with patch("api.services.github_service.Github") as github_cls:
        yield github_cls


def _pull(github_cls) -> MagicMock:
    return github_cls.return_value.get_repo.return_value.get_pull.return_value


# ---------------------------------------------------------------------------
# Installation tokens
# ---------------------------------------------------------------------------


class TestInstallationToken:
    async def test_fresh_token_per_call_by_default(self, make_gateway, fake_github):
        gateway = make_gateway(fake_github)

        await gateway.get_installation_token(42)
        await gateway.get_installation_token(42)

        assert fake_github.paths().count("/app/installations/42/access_tokens") == 2

    async def test_cache_reuses_token_when_enabled(self, make_gateway, fake_github):
        settings = GitHubSettings(api_url=API, token_cache_enabled=True)
        gateway = make_gateway(fake_github, settings)

        first = await gateway.get_installation_token(42)
        second = await gateway.get_installation_token(42)

        assert first is second
        assert fake_github.paths().count("/app/installations/42/access_tokens") == 1

    async def test_rejected_token_is_dropped_from_cache(self, make_gateway):
        fake = FakeGitHub(diff_status=401)
        gateway = make_gateway(fake, GitHubSettings(api_url=API, token_cache_enabled=True))

        with pytest.raises(DiffFetchError):
            await gateway.get_diff("octo", "widgets", 7, 42)
        fake.diff_status = 200
        await gateway.get_diff("octo", "widgets", 7, 42)

        assert fake.paths().count("/app/installations/42/access_tokens") == 2

    async def test_other_failures_keep_cached_token(self, make_gateway):
        fake = FakeGitHub(diff_status=500)
        gateway = make_gateway(fake, GitHubSettings(api_url=API, token_cache_enabled=True))

        with pytest.raises(DiffFetchError):
            await gateway.get_diff("octo", "widgets", 7, 42)
        fake.diff_status = 200
        await gateway.get_diff("octo", "widgets", 7, 42)

        assert fake.paths().count("/app/installations/42/access_tokens") == 1

    async def test_pygithub_401_drops_cached_token(self, make_gateway, fake_github, mock_github_cls):
        pr = _pull(mock_github_cls)
        pr.create_review.side_effect = [GithubException(401, {"message": "Bad credentials"}), MagicMock(id=7)]
        gateway = make_gateway(fake_github, GitHubSettings(api_url=API, token_cache_enabled=True))

        with pytest.raises(ReviewPostError):
            await gateway.create_review("octo", "widgets", 7, 42, event="COMMENT", body="b", comments=[])
        assert await gateway.create_review("octo", "widgets", 7, 42, event="COMMENT", body="b", comments=[]) == 7

        assert fake_github.paths().count("/app/installations/42/access_tokens") == 2

    async def test_exchange_authenticates_with_app_jwt(self, make_gateway, fake_github):
        await make_gateway(fake_github).get_installation_token(42)
        auth = fake_github.requests[0].headers["Authorization"]
        assert auth.startswith("Bearer ")
        assert auth.count(".") == 2


# ---------------------------------------------------------------------------
# Diff
# ---------------------------------------------------------------------------


class TestGetDiff:
    async def test_returns_diff_text(self, make_gateway, fake_github):
        diff = await make_gateway(fake_github).get_diff("octo", "widgets", 7, 42)

        assert diff == fake_github.diff
        diff_request = fake_github.requests[-1]
        assert diff_request.url.path == "/repos/octo/widgets/pulls/7"
        assert diff_request.headers["Accept"] == DIFF_MEDIA_TYPE
        assert diff_request.headers["Authorization"] == "Bearer ghs_installation_token"

    async def test_http_error_raises_diff_fetch_error(self, make_gateway):
        gateway = make_gateway(FakeGitHub(diff_status=500))
        with pytest.raises(DiffFetchError) as exc_info:
            await gateway.get_diff("octo", "widgets", 7, 42)
        assert exc_info.value.status == 500

    async def test_token_failure_raises_diff_fetch_error(self, make_gateway):
        def handler(request):
            return httpx.Response(403, json={"message": "Forbidden"})

        with pytest.raises(DiffFetchError) as exc_info:
            await make_gateway(handler).get_diff("octo", "widgets", 7, 42)
        assert exc_info.value.status == 403


# ---------------------------------------------------------------------------
# PyGithub-backed calls
# ---------------------------------------------------------------------------


class TestGetDetails:
    async def test_maps_pull_request(self, make_gateway, fake_github, mock_github_cls):
        pr = _pull(mock_github_cls)
        pr.number = 7
        pr.title = "Add logging"
        pr.state = "open"
        pr.head.sha = "abc123"
        pr.base.sha = "def456"
        pr.user.login = "octocat"
        pr.html_url = "https://github.test/octo/widgets/pull/7"

        details = await make_gateway(fake_github).get_details("octo", "widgets", 7, 42)

        assert details.head_sha == "abc123"
        assert details.base_sha == "def456"
        assert details.user_login == "octocat"
        mock_github_cls.return_value.get_repo.assert_called_once_with("octo/widgets")

    async def test_404_raises_not_found(self, make_gateway, fake_github, mock_github_cls):
        mock_github_cls.return_value.get_repo.return_value.get_pull.side_effect = GithubException(
            404, {"message": "Not Found"}
        )
        with pytest.raises(NotFoundError):
            await make_gateway(fake_github).get_details("octo", "widgets", 7, 42)

    async def test_other_errors_raise_api_error(self, make_gateway, fake_github, mock_github_cls):
        mock_github_cls.return_value.get_repo.side_effect = GithubException(502, {"message": "Bad Gateway"})
        with pytest.raises(GitHubAPIError) as exc_info:
            await make_gateway(fake_github).get_details("octo", "widgets", 7, 42)
        assert exc_info.value.status == 502


class TestHasBotReviewed:
    @staticmethod
    def _review(login):
        review = MagicMock()
        review.user.login = login
        review.id = 1
        review.state = "COMMENTED"
        review.body = ""
        return review

    async def test_true_when_bot_review_exists(self, make_gateway, fake_github, mock_github_cls):
        _pull(mock_github_cls).get_reviews.return_value = [self._review("someone"), self._review("bot[bot]")]
        gateway = make_gateway(fake_github)
        assert await gateway.has_bot_reviewed("octo", "widgets", 7, 42, "bot[bot]") is True

    async def test_false_without_bot_review(self, make_gateway, fake_github, mock_github_cls):
        _pull(mock_github_cls).get_reviews.return_value = [self._review("someone")]
        gateway = make_gateway(fake_github)
        assert await gateway.has_bot_reviewed("octo", "widgets", 7, 42, "bot[bot]") is False

    async def test_listing_failure_answers_false(self, make_gateway, fake_github, mock_github_cls):
        _pull(mock_github_cls).get_reviews.side_effect = GithubException(500, {"message": "boom"})
        gateway = make_gateway(fake_github)
        assert await gateway.has_bot_reviewed("octo", "widgets", 7, 42, "bot[bot]") is False


class TestCreateReview:
    async def test_posts_comments_against_commit(self, make_gateway, fake_github, mock_github_cls):
        repository = mock_github_cls.return_value.get_repo.return_value
        pr = repository.get_pull.return_value
        pr.create_review.return_value.id = 99
        comments = [GitHubComment(path="app.js", position=1, body="Remove console.log", commit_id="abc123")]

        review_id = await make_gateway(fake_github).create_review(
            "octo", "widgets", 7, 42, event="COMMENT", body="summary", comments=comments, commit_id="abc123"
        )

        assert review_id == 99
        repository.get_commit.assert_called_once_with("abc123")
        pr.create_review.assert_called_once_with(
            body="summary",
            event="COMMENT",
            comments=[{"path": "app.js", "position": 1, "body": "Remove console.log"}],
            commit=repository.get_commit.return_value,
        )

    async def test_without_commit_id(self, make_gateway, fake_github, mock_github_cls):
        repository = mock_github_cls.return_value.get_repo.return_value
        repository.get_pull.return_value.create_review.return_value.id = 5

        await make_gateway(fake_github).create_review(
            "octo", "widgets", 7, 42, event="COMMENT", body="summary", comments=[]
        )

        repository.get_commit.assert_not_called()
        repository.get_pull.return_value.create_review.assert_called_once_with(
            body="summary", event="COMMENT", comments=[]
        )

    async def test_api_failure_raises_review_post_error(self, make_gateway, fake_github, mock_github_cls):
        _pull(mock_github_cls).create_review.side_effect = GithubException(422, {"message": "Unprocessable"})
        with pytest.raises(ReviewPostError) as exc_info:
            await make_gateway(fake_github).create_review(
                "octo", "widgets", 7, 42, event="COMMENT", body="b", comments=[]
            )
        assert exc_info.value.status == 422

    async def test_authenticates_pygithub_with_installation_token(self, make_gateway, fake_github, mock_github_cls):
        _pull(mock_github_cls).create_review.return_value.id = 1
        with patch("api.services.github_service.Auth.Token") as token_auth:
            await make_gateway(fake_github).create_review(
                "octo", "widgets", 7, 42, event="COMMENT", body="b", comments=[]
            )
        token_auth.assert_called_once_with("ghs_installation_token")


# ---------------------------------------------------------------------------
# Installation lookup
# ---------------------------------------------------------------------------


class TestResolveInstallation:
    async def test_returns_installation_id(self, make_gateway, fake_github):
        assert await make_gateway(fake_github).resolve_installation("octo", "widgets") == 42
        assert fake_github.paths() == ["/repos/octo/widgets/installation"]

    async def test_not_installed_returns_none(self, make_gateway):
        assert await make_gateway(FakeGitHub(installation_status=404)).resolve_installation("octo", "widgets") is None

    async def test_other_status_raises(self, make_gateway):
        with pytest.raises(GitHubAPIError):
            await make_gateway(FakeGitHub(installation_status=500)).resolve_installation("octo", "widgets")
