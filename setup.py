# Copyright (C) 2023 Leiden University Medical Center
# This file is part of readqc
#
# readqc is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as
# published by the Free Software Foundation, either version 3 of the
# License, or (at your option) any later version.
#
# readqc is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with readqc.  If not, see <https://www.gnu.org/licenses/

from setuptools import find_packages, setup

setup(
    name="readqc",
    version="0.1.0",
    description="Quality control reports for sequencing reads.",
    license="AGPL-3.0-or-later",
    python_requires=">=3.8",
    package_dir={"": "src"},
    packages=find_packages("src"),
    package_data={"readqc": ["configuration/*.txt", "py.typed"]},
    install_requires=[
        "dnaio>=1.0.0",
        "pygal>=3.0.0",
        "tqdm",
        "xopen>=1.8.0",
    ],
    extras_require={"test": ["pytest"]},
    entry_points={
        "console_scripts": ["readqc=readqc.__main__:main"],
    },
)
