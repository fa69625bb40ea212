import enum
import os
import typing
import common


class lib_version(enum.StrEnum):
    """不常变化的稳定版本"""

    binutils = "2.32"
    avr_libc = "2.0.0"


class git_url:
    remote: str  # 托管平台
    path: str  # git路径
    default_protocol: str  # 非ssh下默认的网络协议

    def __init__(self, remote: str, path: str, default_protocol: str = "https") -> None:
        self.remote = remote
        self.path = path
        self.default_protocol = default_protocol

    def get_url(self) -> str:
        """获取git仓库的url"""
        return f"{self.default_protocol}://{self.remote}/{self.path}"


class git_prefer_remote(enum.StrEnum):
    """gcc的git远程托管平台"""

    github = "github"
    native = "native"


gcc_git_url_list: typing.Final[dict[git_prefer_remote, git_url]] = {
    git_prefer_remote.github: git_url("github.com", "gcc-mirror/gcc.git"),
    git_prefer_remote.native: git_url("gcc.gnu.org", "git/gcc.git", "git"),
}


class tarball:
    name: str  # 解压后的目录名
    url: str  # 下载地址
    file: str  # 下载后的文件名
    extract_option: str  # tar解压选项

    def __init__(self, name: str, url_dir: str, suffix: str, extract_option: str) -> None:
        self.name = name
        self.file = f"{name}{suffix}"
        self.url = f"{url_dir}/{self.file}"
        self.extract_option = extract_option

    def download(self, dir: str) -> str:
        """下载并解压源码包

        Args:
            dir (str): 存放源码包和解压结果的目录

        Returns:
            str: 解压后的源码目录
        """
        _ = common.chdir_guard(dir)
        common.run_command(f"curl -L -O {self.url}")
        common.run_command(f"tar {self.extract_option} {self.file}")
        return os.path.join(dir, self.name)


binutils_tarball = tarball(f"binutils-{lib_version.binutils}", "https://ftpmirror.gnu.org/binutils", ".tar.gz", "xfz")
avr_libc_tarball = tarball(
    f"avr-libc-{lib_version.avr_libc}", "http://download.savannah.gnu.org/releases/avr-libc", ".tar.bz2", "xfj"
)


def get_gcc_source_name(gcc_version: str | None) -> str:
    """获取gcc源码目录名

    Args:
        gcc_version (str | None): gcc版本号，None表示trunk
    """
    return f"gcc-{gcc_version or 'trunk'}"


def clone_gcc(dir: str, gcc_version: str | None, remote: git_prefer_remote) -> str:
    """浅克隆gcc并下载其依赖包

    Args:
        dir (str): 克隆目标所在目录
        gcc_version (str | None): gcc版本号，None表示trunk
        remote (git_prefer_remote): 使用的远程托管平台

    Returns:
        str: gcc源码目录
    """
    name = get_gcc_source_name(gcc_version)
    gcc_dir = os.path.join(dir, name)
    branch = f" --branch releases/{name}" if gcc_version else ""
    common.run_command(f"git clone --depth 1{branch} {gcc_git_url_list[remote].get_url()} {gcc_dir}")
    _ = common.chdir_guard(gcc_dir)
    common.run_command("./contrib/download_prerequisites")
    return gcc_dir


assert __name__ != "__main__", "Import this file instead of running it directly."
