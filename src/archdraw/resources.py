from importlib import resources


def load_stylesheet() -> str:
    with resources.files(__package__).joinpath("data/architecture.css").open("r", encoding="utf-8") as fh:
        return fh.read()


def load_example() -> str:
    with resources.files(__package__).joinpath("data/example.json").open("r", encoding="utf-8") as fh:
        return fh.read()
