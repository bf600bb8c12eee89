# setup.py
from setuptools import setup, find_packages
import os

# Read README for long description
def read_readme():
    readme_path = os.path.join(os.path.dirname(__file__), "README.md")
    if os.path.exists(readme_path):
        with open(readme_path, "r", encoding="utf-8") as f:
            return f.read()
    return "Voicebank Forced Aligner - lab alignment and oto.ini generation"

setup(
    name="voicebank-forced-aligner",
    version="0.1.0",
    packages=find_packages(exclude=["tests*", "docs*", "examples*"]),
    python_requires=">=3.9",

    # Core dependencies
    install_requires=[
        "torch>=1.9.0",
        "torchaudio>=0.9.0",
        "onnxruntime>=1.14.0",
        "huggingface_hub>=0.8.0",
        "numpy>=1.19.0",
        "click>=8.0.0",
    ],

    # Optional dependencies
    extras_require={
        "dev": [
            "pytest>=6.0",
            "pytest-cov>=3.0.0",
            "black>=22.0.0",
            "flake8>=4.0.0",
        ],
        "test": [
            "pytest>=6.0",
            "pytest-cov>=3.0.0",
            "pytest-xdist>=2.5.0",
        ],
        "gpu": [
            "onnxruntime-gpu>=1.14.0",
        ],
    },

    # CLI entry point
    entry_points={
        "console_scripts": [
            "valign=voicebank_aligner.cli:main",
        ],
    },

    description="Voicebank Forced Aligner - phoneme alignment of .lab transcripts and oto.ini generation",
    long_description=read_readme(),
    long_description_content_type="text/markdown",

    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Other Audience",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Multimedia :: Sound/Audio :: Analysis",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
        "Topic :: Text Processing :: Linguistic",
    ],

    keywords=[
        "phoneme", "alignment", "forced-alignment", "singing", "voicebank",
        "utau", "oto", "textgrid", "onnx"
    ],

    include_package_data=True,
    zip_safe=False,
)
