#!/usr/bin/env python3
# -*- coding: utf-8 -*-
import os
import sys
import math
import argparse
import common
import build_plan as plan
import download_source as source
from avr_gcc_environment import environment

description = (
    "Fetch sources and build gcc and environment for the avr target: build binutils, build gcc, "
    "build avr-libc with the new gcc, then rebuild gcc with libstdc++ enabled."
)

libstdcxx_help = """no|freestanding|hosted|hosted+streams.
no - do not build libstdc++;
freestanding - build freestanding version;
hosted - build hosted;
hosted+streams - build hosted and apply patch for streams via stdio if not included."""


class configure(common.basic_configure):
    gcc: str | None  # gcc版本号，None表示trunk
    libstdcxx: str  # libstdc++构建模式
    output_dir: str  # 相对于home的安装目录
    preserve: bool  # 是否保留中间产物
    clean: bool  # 是否删除已存在的安装目录
    jobs: int  # 并发数
    remote: str  # gcc的git远程托管平台
    patch_dir: str  # 补丁所在目录
    compress: bool  # 是否打包安装目录

    def __init__(
        self,
        gcc: str | None = None,
        libstdcxx: str = plan.libstdcxx_mode.no,
        home: str = os.getcwd(),
        output_dir: str = "out",
        preserve: bool = False,
        clean: bool = False,
        jobs: int = math.floor((os.cpu_count() or 1) * 1.5),
        remote: str = source.git_prefer_remote.github,
        patch_dir: str = "",
        compress: bool = False,
    ) -> None:
        super().__init__(home)
        self.gcc = gcc
        self.libstdcxx = libstdcxx
        self.output_dir = output_dir
        self.preserve = preserve
        self.clean = clean
        self.jobs = jobs
        self.remote = remote
        self.patch_dir = patch_dir
        self.compress = compress

    def check(self) -> None:
        common._check_home(self.home)
        assert self.jobs > 0, f"Invalid jobs: {self.jobs}."
        assert self.remote in tuple(source.git_prefer_remote), f"Unknown remote: {self.remote}."


def _check_input(args: argparse.Namespace) -> None:
    assert args.jobs > 0, f"Invalid jobs: {args.jobs}."


def _create_parser(default_config: configure) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="build-avr-gcc", description=description, formatter_class=argparse.ArgumentDefaultsHelpFormatter
    )
    configure.add_argument(parser)
    parser.add_argument("-g", "--gcc", type=str, help="gcc version to build, build trunk if omitted.", default=default_config.gcc)
    parser.add_argument("-l", "--libstdcxx", type=str, help=libstdcxx_help, default=default_config.libstdcxx)
    parser.add_argument(
        "-o", "--output-dir", type=str, help="Directory to place build artifacts, relative to home.", default=default_config.output_dir
    )
    parser.add_argument(
        "-p",
        "--preserve",
        action=argparse.BooleanOptionalAction,
        help="Do not remove intermediate artifacts.",
        default=default_config.preserve,
    )
    parser.add_argument(
        "-c",
        "--clean",
        action=argparse.BooleanOptionalAction,
        help="Remove the output directory if it already exists.",
        default=default_config.clean,
    )
    parser.add_argument(
        "--jobs",
        type=int,
        help="Number of concurrent jobs at build time. Use 1.5 times of cpu cores by default.",
        default=default_config.jobs,
    )
    parser.add_argument(
        "--remote",
        type=str,
        help="The git remote to clone gcc from.",
        default=default_config.remote,
        choices=source.git_prefer_remote,
    )
    parser.add_argument("--patch-dir", type=str, help="The directory containing gcc and avr-libc patches. Use <home>/patches if empty.", default=default_config.patch_dir)
    parser.add_argument(
        "--compress",
        action=argparse.BooleanOptionalAction,
        help="Pack the output directory into a tar.xz archive after building.",
        default=default_config.compress,
    )
    return parser


def _echo_plan(build_plan: plan.build_plan) -> None:
    for item in build_plan.patches_to_apply:
        print(f"[avr-gcc] {item.tree} patch {item.name} will be applied.")
    if build_plan.extra_configure_flags:
        print(f"[avr-gcc] Extra libstdc++ configure options: {' '.join(build_plan.extra_configure_flags)}")


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    parser = _create_parser(configure())
    if not argv:
        parser.print_help()
        return 0
    args = parser.parse_args(argv)
    _check_input(args)

    current_config = configure.parse_args(args)
    current_config.load_config(args)
    current_config.check()

    # 在下载任何源码前完成所有检查
    try:
        request = plan.build_request.parse(current_config.gcc, current_config.libstdcxx)
        build_plan = plan.resolve(request)
        env = environment(
            current_config.gcc,
            build_plan,
            current_config.home,
            current_config.output_dir,
            current_config.jobs,
            current_config.remote,
            current_config.patch_dir,
            current_config.preserve,
        )
        env.check_patch_files()
        env.check_output_dir(current_config.clean)
    except plan.config_error as e:
        print(f"[avr-gcc] {e}", file=sys.stderr)
        return 1

    _echo_plan(build_plan)
    env.build(request.libstdcxx != plan.libstdcxx_mode.no)
    if current_config.compress:
        env.compress()

    current_config.save_config(args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
