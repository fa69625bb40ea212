import os
import common
import build_plan as plan
import download_source as source

# 第一阶段配置选项，binutils和gcc共用
phase1_option = (
    "--target=avr",
    "--enable-languages=c,c++",
    "--enable-lto",
    "--disable-shared",
    "--disable-threads",
    "--disable-nls",
    "--disable-libssp",
    "--with-dwarf2",
)
# 第二阶段配置选项，在第一阶段基础上启用libstdc++
phase2_option = (
    "--disable-nls",
    "--disable-__cxa_atexit",
    "--enable-static",
    "--disable-sjlj-exceptions",
    "--enable-libstdcxx",
    "--with-avrlibc",
)


class output_dir_exists(plan.config_error):
    def __init__(self, path: str) -> None:
        super().__init__(f'Output dir "{path}" already exists.')


class environment(common.basic_environment):
    gcc_version: str | None  # gcc版本号，None表示trunk
    build_plan: plan.build_plan  # libstdc++构建计划
    remote: source.git_prefer_remote  # gcc的git远程托管平台
    patch_dir: str  # 补丁所在目录
    preserve: bool  # 是否保留中间产物
    tmp_dir: str  # 存放源码和中间产物的目录
    binutils_dir: str  # binutils源码目录
    avr_libc_dir: str  # avr-libc源码目录
    gcc_dir: str  # gcc源码目录

    def __init__(
        self,
        gcc_version: str | None,
        build_plan: plan.build_plan,
        home: str,
        output_dir: str,
        jobs: int = 1,
        remote: str = source.git_prefer_remote.github,
        patch_dir: str = "",
        preserve: bool = False,
    ) -> None:
        super().__init__(gcc_version or "trunk", "avr-gcc", home, jobs, os.path.join(home, output_dir))
        self.gcc_version = gcc_version
        self.build_plan = build_plan
        self.remote = source.git_prefer_remote(remote)
        self.patch_dir = os.path.abspath(patch_dir or os.path.join(self.home, "patches"))
        self.preserve = preserve
        self.tmp_dir = os.path.join(self.home, "tmp")
        self.binutils_dir = os.path.join(self.tmp_dir, source.binutils_tarball.name)
        self.avr_libc_dir = os.path.join(self.tmp_dir, source.avr_libc_tarball.name)
        self.gcc_dir = os.path.join(self.tmp_dir, source.get_gcc_source_name(gcc_version))

    def get_patch_path(self, item: plan.patch) -> str:
        return os.path.join(self.patch_dir, item.file)

    def check_patch_files(self) -> None:
        """检查构建计划中的补丁文件是否都存在

        Raises:
            plan.missing_patch_file: 补丁文件不存在
        """
        for item in self.build_plan.patches_to_apply:
            path = self.get_patch_path(item)
            if not os.path.isfile(path):
                raise plan.missing_patch_file(path)

    def check_output_dir(self, clean: bool) -> None:
        """检查安装目录是否已存在，clean为True时删除已有的安装目录

        Args:
            clean (bool): 是否删除已有的安装目录

        Raises:
            output_dir_exists: 安装目录已存在且不允许删除
        """
        if os.path.exists(self.prefix):
            if not clean:
                raise output_dir_exists(self.prefix)
            common.remove(self.prefix)

    def enter_build_dir(self, src_dir: str, remove_files: bool = True) -> None:
        """进入源码树中的构建目录

        Args:
            src_dir (str): 源码树根目录
            remove_files (bool, optional): 是否清空已有的构建目录. 默认清空.
        """
        build_dir = os.path.join(src_dir, "build")
        common.mkdir(build_dir, remove_files)
        common.chdir(build_dir)

    def configure(self, *option: str) -> None:
        """自动对库进行配置

        Args:
            option (tuple[str, ...]): 配置选项
        """
        options = " ".join(("", *option))
        common.run_command(f"../configure{options}")

    def make(self, *target: str) -> None:
        """自动对库进行编译

        Args:
            target (tuple[str, ...]): 要编译的目标
        """
        targets = " ".join(("", *target))
        common.run_command(f"make{targets} -j {self.jobs}")

    def install(self) -> None:
        """安装并剥离调试符号"""
        common.run_command(f"make install-strip -j {self.jobs}")

    def _build(self, src_dir: str, *option: str, remove_files: bool = True) -> None:
        name = os.path.basename(src_dir)
        print(f"[avr-gcc] Will build {name}.")
        self.enter_build_dir(src_dir, remove_files)
        self.configure(*option)
        self.make()
        self.install()
        print(f"[avr-gcc] Done {name}.")

    def apply_patch(self, item: plan.patch) -> None:
        """将补丁应用到对应的源码树，gcc使用git am，avr-libc使用patch

        Args:
            item (plan.patch): 要应用的补丁
        """
        path = self.get_patch_path(item)
        print(f"[avr-gcc] Apply {item.name} patch to {item.tree}.")
        match item.tree:
            case plan.source_tree.gcc:
                common.run_command(f"git -C {self.gcc_dir} am {path}")
            case plan.source_tree.avr_libc:
                common.run_command(f"patch -d {self.avr_libc_dir} -p1 < {path}")

    def build_binutils(self) -> None:
        source.binutils_tarball.download(self.tmp_dir)
        self._build(self.binutils_dir, f"--prefix={self.prefix}", *phase1_option)

    def build_gcc_phase1(self) -> None:
        source.clone_gcc(self.tmp_dir, self.gcc_version, self.remote)
        self._build(self.gcc_dir, f"--prefix={self.prefix}", *phase1_option)
        # 后续阶段需要使用刚安装的avr-gcc
        self.register_in_env()

    def build_avr_libc(self) -> None:
        source.avr_libc_tarball.download(self.tmp_dir)
        for item in self.build_plan.patches_for(plan.source_tree.avr_libc):
            self.apply_patch(item)
        config_guess = os.path.join(self.avr_libc_dir, "config.guess")
        self._build(self.avr_libc_dir, f"--prefix={self.prefix}", f"--build=$({config_guess})", "--host=avr")

    def build_gcc_phase2(self) -> None:
        for item in self.build_plan.patches_for(plan.source_tree.gcc):
            self.apply_patch(item)
        # 复用第一阶段的构建目录
        self._build(
            self.gcc_dir,
            f"--prefix={self.prefix}",
            *phase1_option,
            *phase2_option,
            *self.build_plan.extra_configure_flags,
            remove_files=False,
        )

    def cleanup(self) -> None:
        """删除下载的源码包和解压后的源码树，tmp目录为空时一并删除"""
        print("[avr-gcc] Removing intermediate artifacts.")
        common.chdir(self.home)
        for path in (
            self.binutils_dir,
            os.path.join(self.tmp_dir, source.binutils_tarball.file),
            self.avr_libc_dir,
            os.path.join(self.tmp_dir, source.avr_libc_tarball.file),
            self.gcc_dir,
        ):
            common.remove_if_exists(path)
        if common.remove_empty_dir(self.tmp_dir) is False:
            print(f'[avr-gcc] Tmp directory "{self.tmp_dir}" contains artifacts from another build and can not be removed.')

    def build(self, with_libstdcxx: bool = True) -> None:
        """依次构建binutils、gcc、avr-libc，需要时再次构建带libstdc++的gcc

        Args:
            with_libstdcxx (bool, optional): 是否进行第二阶段构建. 默认进行.
        """
        common.mkdir(self.prefix, False)
        common.mkdir(self.tmp_dir, False)
        print(f"[avr-gcc] Will configure with {' '.join(phase1_option)} {' '.join(phase2_option)}")
        try:
            self.build_binutils()
            self.build_gcc_phase1()
            self.build_avr_libc()
            if not with_libstdcxx:
                print("[avr-gcc] No libstdc++ will be built, build completed.")
                return
            self.build_gcc_phase2()
            print(f"[avr-gcc] Build {self.name} completed.")
        finally:
            if not self.preserve:
                self.cleanup()


assert __name__ != "__main__", "Import this file instead of running it directly."
