"""bgov 실행 진입점 (``python main.py`` 또는 설치 후 ``bgov``)"""

from cli.app import cli


def main():
    cli(prog_name="bgov")


if __name__ == "__main__":
    main()
