from setuptools import setup, find_namespace_packages


def scm_version():
    def local_scheme(version):
        return version.format_choice("+{node}", "+{node}.dirty")
    return {
        "root": ".",
        "relative_to": __file__,
        "version_scheme": "guess-next-dev",
        "local_scheme": local_scheme,
        "fallback_version": "0.1.0",
    }


setup(
    name="b003flash",
    use_scm_version=scm_version(),
    description="Programmer for CH32V003 microcontrollers running the b003 USB bootloader",
    license="0-clause BSD License",
    python_requires=">=3.10",
    setup_requires=[
        "setuptools",
        "setuptools_scm"
    ],
    install_requires=[
        "fx2>=0.9",
        "libusb1>=1.8.1",
    ],
    packages=find_namespace_packages(include=["b003flash", "b003flash.*"]),
    entry_points={
        "console_scripts": [
            "b003flash = b003flash.cli:run_main"
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'License :: OSI Approved', # ' :: 0-clause BSD License', (not in PyPI)
        'Topic :: Software Development :: Embedded Systems',
        'Topic :: System :: Hardware',
    ],
)
