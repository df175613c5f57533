#!/usr/bin/env python3
"""
Setup configuration for songfetch
Download Spotify tracks, albums and playlists from YouTube Music with a Kugou fallback
"""

from setuptools import setup, find_packages

# Read README for long description
with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

# Core requirements (always installed)
core_requirements = [
    "spotipy>=2.22.1",
    "yt-dlp>=2023.12.30",
    "mutagen>=1.47.0",
    "click>=8.1.7",
    "pyyaml>=6.0.1",
    "requests>=2.31.0",
    "tqdm>=4.66.1",
    "colorama>=0.4.6",
    "python-dotenv>=1.0.0",
    "Pillow>=10.0.0",
    "musicbrainzngs>=0.7.1",
]

setup(
    name="songfetch",
    version="0.4.0",
    author="songfetch contributors",
    description="Download Spotify tracks locally from YouTube Music, falling back to the Kugou catalog",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/songfetch/songfetch",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio",
        "Topic :: Internet :: WWW/HTTP :: Dynamic Content",
    ],
    python_requires=">=3.9",
    install_requires=core_requirements,
    extras_require={
        "test": [
            "pytest>=7.4.3",
        ],
        "dev": [
            "pytest>=7.4.3",
            "black>=23.11.0",
            "flake8>=6.1.0",
            "mypy>=1.7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "songfetch=songfetch.main:cli",
        ],
    },
    include_package_data=True,
    package_data={
        "songfetch": ["config/*.yaml"],
    },
    keywords="spotify youtube kugou music download playlist cli",
    project_urls={
        "Bug Reports": "https://github.com/songfetch/songfetch/issues",
        "Source": "https://github.com/songfetch/songfetch",
    },
)
