import enum
import re
import typing
import packaging.version as version

# 需要的libstdc++补丁最早只能应用到gcc 9的发布分支上
MIN_PATCHABLE_GCC_MAJOR: typing.Final[int] = 9
# 上述补丁已合入gcc 11，主版本号不小于11的发布分支无需再打补丁
UPSTREAM_PATCHES_GCC_MAJOR: typing.Final[int] = 11


class libstdcxx_mode(enum.StrEnum):
    """libstdc++构建模式"""

    no = "no"  # 不构建libstdc++
    freestanding = "freestanding"  # 独立实现
    hosted = "hosted"  # 宿主实现
    hosted_streams = "hosted+streams"  # 宿主实现，并基于stdio提供流


class source_tree(enum.StrEnum):
    """补丁所作用的源码树"""

    gcc = "gcc"
    avr_libc = "avr-libc"


class patch(typing.NamedTuple):
    name: str  # 补丁名称
    tree: source_tree  # 补丁作用的源码树
    file: str  # 补丁文件相对于补丁目录的路径


build_patch = patch(
    "build",
    source_tree.gcc,
    "gcc/0001-libstdc-Disabling-AC_LIBTOOL_DLOPEN-check-if-buildin.patch",
)
freestanding_malloc_patch = patch(
    "freestanding-malloc",
    source_tree.gcc,
    "gcc/0001-libstdc-Declare-malloc-for-freestanding.patch",
)
streams_patch = patch(
    "streams",
    source_tree.gcc,
    "gcc/0001-libstdc-Support-libc-with-stdio-only-I-O-in-libstdc.patch",
)
avr_libc_patch = patch("avr-libc", source_tree.avr_libc, "avr-libc/avr-libc.patch")


class config_error(RuntimeError):
    """构建配置非法，需在下载任何源码前终止"""


class gcc_too_old_for_patches(config_error):
    def __init__(self, gcc_version: version.Version) -> None:
        super().__init__(f"GCC {gcc_version} is too old. Patches required for libstdc++ can't be applied.")


class unknown_mode(config_error):
    def __init__(self, mode: str) -> None:
        choices = "|".join(libstdcxx_mode)
        super().__init__(f'Wrong value "{mode}" for libstdc++ mode, expected one of {choices}.')


class invalid_gcc_version(config_error):
    def __init__(self, gcc_version: str) -> None:
        super().__init__(f'Invalid gcc version "{gcc_version}", expected <major>[.<minor>[.<patch>]].')


class missing_patch_file(config_error):
    def __init__(self, path: str) -> None:
        super().__init__(f'Cannot find patch file "{path}".')


def parse_gcc_version(gcc_version: str) -> version.Version:
    """解析gcc版本号，如10、10.2或10.2.0

    Args:
        gcc_version (str): 用户输入的版本号

    Raises:
        invalid_gcc_version: 版本号不是1到3个由点分隔的数字字段

    Returns:
        version.Version: 解析后的版本号
    """
    # 版本号会原样拼接到分支名中，只接受纯数字字段
    if not re.fullmatch(r"[0-9]+(\.[0-9]+){0,2}", gcc_version):
        raise invalid_gcc_version(gcc_version)
    return version.Version(gcc_version)


class build_request(typing.NamedTuple):
    gcc_version: version.Version | None  # 为None时从trunk构建
    libstdcxx: libstdcxx_mode

    @classmethod
    def parse(cls, gcc_version: str | None, libstdcxx: str) -> "build_request":
        """从命令行输入构造构建请求

        Args:
            gcc_version (str | None): gcc版本号，None或空串表示trunk
            libstdcxx (str): libstdc++构建模式

        Raises:
            invalid_gcc_version: gcc版本号非法
            unknown_mode: 未知的libstdc++构建模式
        """
        parsed_version = parse_gcc_version(gcc_version) if gcc_version else None
        try:
            mode = libstdcxx_mode(libstdcxx)
        except ValueError:
            raise unknown_mode(libstdcxx)
        return cls(parsed_version, mode)

    @property
    def patches_included_upstream(self) -> bool:
        # NOTE: 默认trunk已包含所有补丁，trunk变化后需要重新确认
        return self.gcc_version is None or self.gcc_version.major >= UPSTREAM_PATCHES_GCC_MAJOR


class build_plan(typing.NamedTuple):
    extra_configure_flags: tuple[str, ...]  # 追加到第二阶段gcc配置的选项
    patches_to_apply: tuple[patch, ...]  # 按应用顺序排列的补丁

    def patches_for(self, tree: source_tree) -> tuple[patch, ...]:
        return tuple(item for item in self.patches_to_apply if item.tree == tree)


def _hosted_plan(need_patches: bool) -> build_plan:
    return build_plan((), (build_patch, avr_libc_patch) if need_patches else ())


def resolve(request: build_request) -> build_plan:
    """根据构建请求确定第二阶段的额外配置选项和需要应用的补丁，不进行任何I/O

    Args:
        request (build_request): 构建请求

    Raises:
        gcc_too_old_for_patches: libstdc++需要补丁而gcc版本过旧
        unknown_mode: 未知的libstdc++构建模式

    Returns:
        build_plan: 构建计划
    """
    if request.libstdcxx not in tuple(libstdcxx_mode):
        raise unknown_mode(str(request.libstdcxx))
    mode = libstdcxx_mode(request.libstdcxx)
    if mode != libstdcxx_mode.no and request.gcc_version is not None and request.gcc_version.major < MIN_PATCHABLE_GCC_MAJOR:
        raise gcc_too_old_for_patches(request.gcc_version)

    need_patches = not request.patches_included_upstream
    match mode:
        case libstdcxx_mode.no:
            return build_plan((), ())
        case libstdcxx_mode.freestanding:
            return build_plan(
                ("--disable-hosted-libstdcxx",),
                (build_patch, freestanding_malloc_patch) if need_patches else (),
            )
        case libstdcxx_mode.hosted:
            return _hosted_plan(need_patches)
        case libstdcxx_mode.hosted_streams:
            # 在hosted的基础上追加stdio流选项和补丁
            hosted = _hosted_plan(need_patches)
            return build_plan(
                (*hosted.extra_configure_flags, "--enable-cstdio=stdio_pure"),
                (*hosted.patches_to_apply, streams_patch) if need_patches else hosted.patches_to_apply,
            )
        case _:
            raise unknown_mode(str(mode))


def resolve_build_plan(gcc_version: str | None, libstdcxx: str) -> build_plan:
    """解析用户输入并生成构建计划

    Args:
        gcc_version (str | None): gcc版本号，None表示trunk
        libstdcxx (str): libstdc++构建模式

    Returns:
        build_plan: 构建计划
    """
    return resolve(build_request.parse(gcc_version, libstdcxx))


assert __name__ != "__main__", "Import this file instead of running it directly."
