"""Tests for checkout script generation."""

from bitbucket_scm.config import BitbucketScmConfig
from bitbucket_scm.services.checkout_command import GIT_WRAPPER, build_checkout_command
from bitbucket_scm.services.scm_provider import ParentConfig

BASE_CONFIG = {"oauthClientId": "myclientid", "oauthClientSecret": "myclientsecret"}

REPO = {
    "branch": "master",
    "host": "bitbucket.org",
    "org": "screwdriver-cd",
    "repo": "guide",
    "sha": "12345",
}


def _config(**overrides) -> BitbucketScmConfig:
    return BitbucketScmConfig.model_validate({**BASE_CONFIG, **overrides})


def _assert_in_order(command: str, *fragments: str) -> None:
    position = -1
    for fragment in fragments:
        found = command.find(fragment, position + 1)
        assert found > position, f"{fragment!r} missing or out of order"
        position = found


class TestDefaultCheckout:
    def test_named_step(self) -> None:
        step = build_checkout_command(_config(), **REPO)
        assert step.to_dict()["name"] == "sd-checkout-code"

    def test_clone_and_reset_to_sha(self) -> None:
        command = build_checkout_command(_config(), **REPO).command

        _assert_in_order(
            command,
            'export GIT_RECURSIVE_OPTION="--recursive"',
            'export GIT_SPARSE_OPTION="--no-checkout"',
            "echo 'Cloning bitbucket.org/screwdriver-cd/guide, on branch master'",
            "then export SCM_URL=git@bitbucket.org:screwdriver-cd/guide;",
            "then export SCM_URL=https://$SCM_USERNAME:$SCM_ACCESS_TOKEN@"
            "bitbucket.org/screwdriver-cd/guide;",
            "else export SCM_URL=https://bitbucket.org/screwdriver-cd/guide; fi",
            "--branch 'master' $SCM_URL $SD_SOURCE_DIR",
            "git sparse-checkout set $GIT_SPARSE_CHECKOUT_PATH",
            "echo 'Reset to SHA 12345'",
            f"{GIT_WRAPPER} \"git reset --hard '12345'\"",
            f'{GIT_WRAPPER} "git config user.name sd-buildbot"',
            f'{GIT_WRAPPER} "git config user.email dev-null@screwdriver.cd"',
        )
        assert "git fetch origin" not in command
        assert "CONFIG_URL" not in command
        assert not command.endswith("cd ")

    def test_shallow_clone_toggle(self) -> None:
        command = build_checkout_command(_config(), **REPO).command

        assert "--depth=50 --no-single-branch" in command
        assert "[ $GIT_SHALLOW_CLONE = false ]" in command

    def test_custom_git_identity(self) -> None:
        config = _config(username="batman", email="batman@example.com")
        command = build_checkout_command(config, **REPO).command

        assert '"git config user.name batman"' in command
        assert '"git config user.email batman@example.com"' in command

    def test_commit_branch_overrides_branch(self) -> None:
        command = build_checkout_command(_config(), **REPO, commit_branch="feature").command

        assert "on branch feature'" in command
        assert "--branch 'feature' $SCM_URL" in command

    def test_root_dir_changes_directory_last(self) -> None:
        command = build_checkout_command(_config(), **REPO, root_dir="src/app").command

        assert command.endswith(" && cd src/app")


class TestPullRequestCheckout:
    def test_resets_to_branch_and_merges_pr(self) -> None:
        command = build_checkout_command(_config(), **REPO, pr_ref="pull/3/merge").command

        _assert_in_order(
            command,
            "echo 'Reset to SHA master'",
            f"{GIT_WRAPPER} \"git reset --hard 'master'\"",
            "echo 'Fetching PR and merging with master'",
            f'{GIT_WRAPPER} "git fetch origin pull/3/head:pr"',
            f'{GIT_WRAPPER} "git merge --no-edit 12345"',
            "git submodule update --init --recursive",
        )

    def test_plain_branch_ref_is_fetched_as_is(self) -> None:
        command = build_checkout_command(_config(), **REPO, pr_ref="mynewbranch").command

        assert '"git fetch origin mynewbranch"' in command


class TestReadOnlyCheckout:
    def test_https_clone_type(self) -> None:
        config = _config(readOnly={"enabled": True, "cloneType": "https"})
        command = build_checkout_command(config, **REPO).command

        assert "SCM_CLONE_TYPE" not in command
        assert (
            "then export SCM_URL=https://$SCM_USERNAME:$SCM_ACCESS_TOKEN@"
            "bitbucket.org/screwdriver-cd/guide; "
            "else export SCM_URL=https://bitbucket.org/screwdriver-cd/guide; fi"
        ) in command

    def test_ssh_clone_type(self) -> None:
        config = _config(readOnly={"enabled": True, "cloneType": "ssh"})
        command = build_checkout_command(config, **REPO).command

        assert "export SCM_URL=git@bitbucket.org:screwdriver-cd/guide && " in command
        assert "SCM_ACCESS_TOKEN" not in command


class TestParentConfigCheckout:
    def test_clones_config_repo_first(self) -> None:
        parent = ParentConfig(
            host="bitbucket.org", org="screwdriver-cd", repo="parent", branch="main", sha="abcde"
        )
        command = build_checkout_command(_config(), **REPO, parent_config=parent).command

        _assert_in_order(
            command,
            "then export CONFIG_URL=git@bitbucket.org:screwdriver-cd/parent;",
            "export SD_CONFIG_DIR=$SD_ROOT_DIR/config",
            "echo 'Cloning external config repo bitbucket.org/screwdriver-cd/parent'",
            "--branch 'main' $CONFIG_URL $SD_CONFIG_DIR",
            f'{GIT_WRAPPER} "git -C $SD_CONFIG_DIR reset --hard abcde"',
            "echo Reset external config repo to abcde",
            "echo 'Cloning bitbucket.org/screwdriver-cd/guide, on branch master'",
        )


class TestAdapterCheckoutCommand:
    async def test_uses_adapter_config(self, make_scm) -> None:
        scm, handler = make_scm(lambda request: None, username="robin")

        step = scm.get_checkout_command(**REPO)

        assert '"git config user.name robin"' in step.command
        assert handler.requests == []
