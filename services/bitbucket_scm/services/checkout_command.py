"""Checkout script generation for the build executor.

Builds the shell command the executor runs to clone a repository, pin it
to the build's commit and (for pull requests) merge the PR head. The
adapter never runs git itself.

Branch names, hosts, paths and SHAs are interpolated as-is. They come
from the orchestrator's own pipeline configuration and webhook-derived
records, which are the trust boundary; callers must not pass arbitrary
end-user input here.

Runtime toggles read by the script:
    GIT_RECURSIVE_CLONE=false      skip submodules
    GIT_SHALLOW_CLONE=false        full clone instead of --depth=50
    GIT_SPARSE_CHECKOUT_PATH=...   sparse checkout of the given paths
    SCM_CLONE_TYPE=ssh             clone over ssh
    SCM_USERNAME, SCM_ACCESS_TOKEN https credentials
"""

from bitbucket_scm.config import BitbucketScmConfig, CloneType
from bitbucket_scm.services.scm_provider import CheckoutCommand, ParentConfig

GIT_WRAPPER = (
    "$(if git --version > /dev/null 2>&1; then echo 'eval'; else echo 'sd-step exec core/git'; fi)"
)
CONFIG_DIR = "$SD_ROOT_DIR/config"


def _clone_url_selector(variable: str, https_url: str, ssh_url: str) -> str:
    """Pick ssh, credentialed https or anonymous https at runtime."""
    return (
        "if [ ! -z $SCM_CLONE_TYPE ] && [ $SCM_CLONE_TYPE = ssh ]; "
        f"then export {variable}={ssh_url}; "
        "elif [ ! -z $SCM_USERNAME ] && [ ! -z $SCM_ACCESS_TOKEN ]; "
        f"then export {variable}=https://$SCM_USERNAME:$SCM_ACCESS_TOKEN@{https_url}; "
        f"else export {variable}=https://{https_url}; fi"
    )


def _credentials_or_https(variable: str, https_url: str) -> str:
    return (
        "if [ ! -z $SCM_USERNAME ] && [ ! -z $SCM_ACCESS_TOKEN ]; "
        f"then export {variable}=https://$SCM_USERNAME:$SCM_ACCESS_TOKEN@{https_url}; "
        f"else export {variable}=https://{https_url}; fi"
    )


def _clone(branch: str, url_variable: str, target_dir: str) -> str:
    return (
        "if [ ! -z $GIT_SHALLOW_CLONE ] && [ $GIT_SHALLOW_CLONE = false ]; "
        f"then {GIT_WRAPPER} "
        "\"git clone $GIT_SPARSE_OPTION $GIT_RECURSIVE_OPTION --quiet --progress "
        f"--branch '{branch}' "
        f'${url_variable} {target_dir}"; '
        f"else {GIT_WRAPPER} "
        '"git clone $GIT_SPARSE_OPTION --depth=50 --no-single-branch $GIT_RECURSIVE_OPTION '
        "--quiet --progress "
        f"--branch '{branch}' ${url_variable} {target_dir}\"; fi"
    )


SPARSE_CHECKOUT = (
    'if [ ! -z "$GIT_SPARSE_CHECKOUT_PATH" ];'
    'then $SD_GIT_WRAPPER "git sparse-checkout set $GIT_SPARSE_CHECKOUT_PATH" && '
    '$SD_GIT_WRAPPER "git checkout"; fi'
)


def build_checkout_command(
    config: BitbucketScmConfig,
    *,
    branch: str,
    host: str,
    org: str,
    repo: str,
    sha: str,
    commit_branch: str | None = None,
    pr_ref: str | None = None,
    parent_config: ParentConfig | None = None,
    root_dir: str | None = None,
) -> CheckoutCommand:
    """Build the checkout step for one build.

    The repository is reset to sha, or to the branch head for PR builds
    (the PR head is merged on top afterwards). A parent config repository,
    when given, is cloned into $SD_ROOT_DIR/config first.
    """
    checkout_url = f"{host}/{org}/{repo}"
    ssh_checkout_url = f"git@{host}:{org}/{repo}"
    checkout_branch = commit_branch or branch
    checkout_ref = checkout_branch if pr_ref else sha

    command: list[str] = [
        "if [ ! -z $GIT_RECURSIVE_CLONE ] && [ $GIT_RECURSIVE_CLONE = false ]; "
        'then export GIT_RECURSIVE_OPTION=""; '
        'else export GIT_RECURSIVE_OPTION="--recursive"; fi',
        'if [ ! -z "$GIT_SPARSE_CHECKOUT_PATH" ]; '
        'then export GIT_SPARSE_OPTION="--no-checkout";'
        'else export GIT_SPARSE_OPTION=""; fi',
    ]

    if parent_config is not None:
        parent_url = f"{parent_config.host}/{parent_config.org}/{parent_config.repo}"
        parent_ssh_url = f"git@{parent_config.host}:{parent_config.org}/{parent_config.repo}"

        command.append(_clone_url_selector("CONFIG_URL", parent_url, parent_ssh_url))
        command.append(f"export SD_CONFIG_DIR={CONFIG_DIR}")
        command.append(f"echo 'Cloning external config repo {parent_url}'")
        command.append(_clone(parent_config.branch, "CONFIG_URL", "$SD_CONFIG_DIR"))
        command.append(SPARSE_CHECKOUT)
        command.append(f'{GIT_WRAPPER} "git -C $SD_CONFIG_DIR reset --hard {parent_config.sha}"')
        command.append(f"echo Reset external config repo to {parent_config.sha}")

    command.append(f"echo 'Cloning {checkout_url}, on branch {checkout_branch}'")

    if config.read_only.enabled:
        if config.read_only.clone_type == CloneType.SSH:
            command.append(f"export SCM_URL={ssh_checkout_url}")
        else:
            command.append(_credentials_or_https("SCM_URL", checkout_url))
    else:
        command.append(_clone_url_selector("SCM_URL", checkout_url, ssh_checkout_url))

    command.append(_clone(checkout_branch, "SCM_URL", "$SD_SOURCE_DIR"))
    command.append(SPARSE_CHECKOUT)

    command.append(f"echo 'Reset to SHA {checkout_ref}'")
    command.append(f"{GIT_WRAPPER} \"git reset --hard '{checkout_ref}'\"")

    command.append("echo Setting user name and user email")
    command.append(f'{GIT_WRAPPER} "git config user.name {config.username}"')
    command.append(f'{GIT_WRAPPER} "git config user.email {config.email}"')

    if pr_ref:
        fetch_ref = pr_ref.replace("merge", "head:pr", 1)

        command.append(f"echo 'Fetching PR and merging with {checkout_branch}'")
        command.append(f'{GIT_WRAPPER} "git fetch origin {fetch_ref}"')
        command.append(f'{GIT_WRAPPER} "git merge --no-edit {sha}"')
        command.append(
            "if [ ! -z $GIT_RECURSIVE_CLONE ] && [ $GIT_RECURSIVE_CLONE = false ]; "
            f'then {GIT_WRAPPER} "git submodule init"; '
            f'else {GIT_WRAPPER} "git submodule update --init --recursive"; fi'
        )

    if root_dir:
        command.append(f"cd {root_dir}")

    return CheckoutCommand(command=" && ".join(command))
