from setuptools import setup, find_packages

setup(
    name="search_preview",
    version="0.1.0",
    author="Unknown",
    description="Fuzzy file search with live preview and a recently used files list",
    packages=find_packages(include=["preview_common", "preview_common.*"]),
    py_modules=["main_quick_open", "t_rank_files"],
    install_requires=[
        "pyperclip==1.9.0",
        "prompt_toolkit==3.0.52",
        "thefuzz==0.22.1",
        "tabulate==0.9.0",
        "PyYAML==6.0.2",
        "pathspec==0.12.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "quick-open=main_quick_open:main",
            "rank-files=t_rank_files:main",
        ],
    },
    python_requires=">=3.8",
)
