from setuptools import setup, find_packages

setup(
    name="alicebackup",
    version="0.4.0",
    description="aliceBackup runs weekly full and daily differential backups - encrypted with gpg and pushed to a backup server with rsync.",
    author="aliceBackup contributors",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=["pyyaml",
    ],
    extras_require={
        "test": ["pytest"],
    },
    entry_points={
        "console_scripts": [
            "alicebackup=alicebackup.main:main",
        ],
    },
    python_requires=">=3.8",
)
