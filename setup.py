from setuptools import setup, find_packages

with open("README.md", "r", encoding='utf-8') as fh:
    long_description = fh.read()

setup(
    name="ldap-conformance",
    version="1.0.0",
    packages=find_packages(),
    include_package_data=True,
    package_data={'ldap_conformance': ["py.typed", "test/*.json"]},
    python_requires='>=3.10',
    install_requires=[
        'python-ldap',
        'case-insensitive-dictionary',
        'ldap-filter',
        'PyYAML',
    ],
    extras_require={
        'test': [
            'python-ldap-faker',
            'pytest',
        ],
    },
    entry_points={
        'console_scripts': [
            'ldap-conformance=ldap_conformance.cli:main',
        ],
    },
    author="Caltech IMSS ADS",
    author_email="cmalek@caltech.edu",
    url="https://github.com/caltechads/ldap-conformance",
    description="Run bind, add, search, compare, modify, modify DN, delete and abandon "
                "operations against a live LDAP server and report how it behaved.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    keywords=['ldap', 'testing', 'conformance'],
    classifiers=[
        'Development Status :: 4 - Beta',
        'Environment :: Console',
        'Intended Audience :: Developers',
        'Intended Audience :: System Administrators',
        'License :: OSI Approved :: BSD License',
        'Operating System :: OS Independent',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.10',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',
        'Topic :: Software Development :: Testing',
        'Topic :: System :: Systems Administration :: Authentication/Directory :: LDAP',
    ],
)
