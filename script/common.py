import functools
import os
import psutil
import shutil
import json
import argparse
import inspect
import itertools
import subprocess
from collections.abc import Callable
from typing import ParamSpec, TypeVar

P = ParamSpec("P")
R = TypeVar("R")


class command_dry_run:
    """是否只显示命令而不实际执行"""

    _dry_run: bool = False

    @classmethod
    def get(cls) -> bool:
        return cls._dry_run

    @classmethod
    def set(cls, dry_run: bool) -> None:
        cls._dry_run = dry_run


def _support_dry_run(echo_fn: Callable[..., str | None] | None = None) -> Callable[[Callable[P, R]], Callable[P, R | None]]:
    """根据dry_run参数和command_dry_run中的全局状态确定是否只回显命令而不执行，若fn没有dry_run参数则只会使用全局状态

    Args:
        echo_fn (Callable[..., str | None] | None, optional): 回调函数，返回要显示的命令字符串或None，无回调或返回None时不显示命令，所有参数需要能在主函数的参数列表中找到，默认为无回调.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R | None]:
        signature = inspect.signature(fn)

        @functools.wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R | None:
            bound_args = signature.bind(*args, **kwargs)
            bound_args.apply_defaults()
            if echo_fn:
                param_list: list = []
                for key in inspect.signature(echo_fn).parameters.keys():
                    assert (
                        key in bound_args.arguments
                    ), f"The param {key} of echo_fn is not in the param list of fn. Every param of echo_fn should be able to find in the param list of fn."
                    param_list.append(bound_args.arguments[key])
                echo = echo_fn(*param_list)
                if echo is not None:
                    print(echo)
            dry_run: bool | None = bound_args.arguments.get("dry_run")
            assert isinstance(dry_run, bool | None), f"The param dry_run must be a bool or None."
            if dry_run is None and command_dry_run.get() or dry_run:
                return
            return fn(*bound_args.args, **bound_args.kwargs)

        return wrapper

    return decorator


@_support_dry_run(lambda command: f"[avr-gcc] Run command: {command}")
def run_command(command: str, dry_run: bool | None = None) -> subprocess.CompletedProcess[str] | None:
    """运行指定命令，命令执行出错时抛出RuntimeError

    Args:
        command (str): 要运行的命令
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.

    Raises:
        RuntimeError: 命令执行失败时抛出异常

    Returns:
        None | subprocess.CompletedProcess[str]: 命令执行结果，只回显命令时返回None
    """
    try:
        return subprocess.run(command, shell=True, check=True, text=True)
    except subprocess.CalledProcessError as e:
        raise RuntimeError(f'Command "{command}" failed with errno={e.returncode}.')


@_support_dry_run(lambda path: f"[avr-gcc] Create directory {path}.")
def mkdir(path: str, remove_if_exist=True, dry_run: bool | None = None) -> None:
    """创建目录

    Args:
        path (str): 要创建的目录
        remove_if_exist (bool, optional): 是否先删除已存在的同名目录. 默认先删除已存在的同名目录.
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if remove_if_exist and os.path.exists(path):
        shutil.rmtree(path)
    os.makedirs(path, exist_ok=True)


@_support_dry_run(lambda path: f"[avr-gcc] Remove {path}.")
def remove(path: str, dry_run: bool | None = None) -> None:
    """删除指定路径

    Args:
        path (str): 要删除的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if os.path.isdir(path):
        shutil.rmtree(path)
    else:
        os.remove(path)


@_support_dry_run(lambda path: f"[avr-gcc] Remove {path} if path exists.")
def remove_if_exists(path: str, dry_run: bool | None = None) -> None:
    """如果指定路径存在则删除指定路径

    Args:
        path (str): 要删除的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.
    """
    if os.path.exists(path):
        remove(path)


@_support_dry_run(lambda path: f"[avr-gcc] Remove directory {path} if it is empty.")
def remove_empty_dir(path: str, dry_run: bool | None = None) -> bool:
    """删除空目录，目录非空时保留目录

    Args:
        path (str): 要删除的目录
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.

    Returns:
        bool: 目录是否已被删除
    """
    if not os.path.isdir(path):
        return True
    if os.listdir(path):
        return False
    os.rmdir(path)
    return True


@_support_dry_run(lambda path: f"[avr-gcc] Enter directory {path}.")
def chdir(path: str, dry_run: bool | None = None) -> str:
    """将工作目录设置为指定路径

    Args:
        path (str): 要进入的路径
        dry_run (bool | None, optional): 是否只回显命令而不执行，默认为None.

    Returns:
        str: 之前的工作目录
    """
    cwd = os.getcwd()
    os.chdir(path)
    return cwd


class chdir_guard:
    """在构造时进入指定工作目录并在析构时回到原工作目录"""

    cwd: str
    dry_run: bool | None

    def __init__(self, path: str, dry_run: bool | None = None) -> None:
        self.dry_run = dry_run
        self.cwd = chdir(path, dry_run) or ""

    def __del__(self) -> None:
        if self.cwd:
            chdir(self.cwd, self.dry_run)


class basic_environment:
    """工具链构建的基本环境"""

    version: str  # 版本号
    major_version: str  # 主版本号
    home: str  # 工作根目录
    jobs: int  # 编译所用线程数
    name_without_version: str  # 不带版本号的工具链名
    name: str  # 工具链名
    prefix: str  # 工具链安装位置
    bin_dir: str  # 安装后可执行文件所在目录

    def __init__(self, version: str, name_without_version: str, home: str, jobs: int, prefix: str) -> None:
        self.version = version
        self.major_version = self.version.split(".")[0]
        self.name_without_version = name_without_version
        self.name = f"{self.name_without_version}-{self.major_version}"
        self.home = home
        self.jobs = jobs
        self.prefix = prefix
        self.bin_dir = os.path.join(self.prefix, "bin")

    def compress(self) -> None:
        """将安装目录压缩为tar.xz包，压缩包与安装目录位于同一目录下"""
        _ = chdir_guard(os.path.dirname(self.prefix))
        name = os.path.basename(self.prefix)
        run_command(f"tar -cf {name}.tar {name}")
        memory_MB = psutil.virtual_memory().available // 1048576 + 3072
        run_command(f"xz -fev9 -T 0 --memlimit={memory_MB}MiB {name}.tar")

    def register_in_env(self) -> None:
        """注册安装路径到环境变量"""
        os.environ["PATH"] = f"{self.bin_dir}:{os.environ['PATH']}"


def _check_home(home: str) -> None:
    assert os.path.exists(home), f'The home dir "{home}" does not exist.'


class basic_configure:
    home: str  # 工作根目录

    def __init__(self, home: str = os.getcwd()) -> None:
        self.home = os.path.abspath(home)

    @staticmethod
    def add_argument(parser: argparse.ArgumentParser) -> None:
        """为argparse添加--home、--export、--import和--dry-run选项

        Args:
            parser (argparse.ArgumentParser): 命令行解析器
        """
        parser.add_argument("--home", type=str, help="The root directory to place tmp and output directories.", default=os.getcwd())
        parser.add_argument("--export", dest="export_file", type=str, help="Export settings to specific file.")
        parser.add_argument("--import", dest="import_file", type=str, help="Import settings from specific file.")
        parser.add_argument(
            "--dry-run",
            dest="dry_run",
            action=argparse.BooleanOptionalAction,
            help="Preview the commands without actually executing them.",
            default=False,
        )

    @classmethod
    def parse_args(cls, args: argparse.Namespace):
        _check_home(args.home)
        command_dry_run.set(args.dry_run)
        args_list = vars(args)
        parma_list: list = []
        for parma in itertools.islice(inspect.signature(cls.__init__).parameters.keys(), 1, None):
            assert parma in args_list, f"The parma {parma} is not in args. Every parma except self should be able to find in args."
            parma_list.append(args_list[parma])
        return cls(*parma_list)

    def save_config(self, args: argparse.Namespace) -> None:
        """将配置保存到文件，使用json格式

        Args:
            args (argparse.Namespace): 用户输入参数

        Raises:
            RuntimeError: 保存失败抛出异常
        """
        export_file: str | None = args.export_file
        if export_file:
            try:
                with open(export_file, "w") as file:
                    json.dump(vars(self), file, indent=4)
                print(f'[avr-gcc] Settings have been written to file "{export_file}"')
            except Exception as e:
                raise RuntimeError(f"Export settings failed: {e}")

    def load_config(self, args: argparse.Namespace) -> None:
        """从配置文件中加载配置，然后合并加载的配置和用户输入的配置

        Args:
            args (argparse.Namespace): 用户输入参数

        Raises:
            RuntimeError: 加载失败抛出异常
        """
        import_file: str | None = args.import_file
        if import_file:
            try:
                with open(import_file) as file:
                    import_config_list = json.load(file)
                if not isinstance(import_config_list, dict):
                    raise RuntimeError(f'Invalid configure file "{import_file}".')
            except Exception as e:
                raise RuntimeError(f'Import file "{import_file}" failed: {e}')
            current_config_list = vars(self)
            default_config_list = vars(type(self)())
            self.__dict__ = {
                # 若import_config中没有则使用default_config中的值，以便在配置类更新后原配置文件可以正确加载
                key: (import_config_list.get(key, default_config_list[key]) if value == default_config_list[key] else value)
                for key, value in current_config_list.items()
            }


assert __name__ != "__main__", "Import this file instead of running it directly."
