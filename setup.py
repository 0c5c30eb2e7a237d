# -*- coding: utf-8 -*-
from setuptools import setup

# Import version from hostedopenid library itself
VERSION = __import__('hostedopenid').__version__
INSTALL_REQUIRES = [
    'certifi',
    'cryptography >=42',
    'lxml',
]
EXTRAS_REQUIRE = {
    'quality': ('flake8', 'isort'),
    'tests': ('mock', 'testfixtures', 'responses', 'requests', 'coverage'),
    # Optional dependency for fetchers
    'requests': ('requests', ),
}
LONG_DESCRIPTION = open('README.md').read() + '\n\n' + open('Changelog.md').read()
CLASSIFIERS = [
    'Development Status :: 4 - Beta',
    'Environment :: Web Environment',
    'Intended Audience :: Developers',
    'License :: OSI Approved :: Apache Software License',
    'Operating System :: POSIX',
    'Programming Language :: Python',
    'Programming Language :: Python :: 3',
    'Programming Language :: Python :: 3 :: Only',
    'Topic :: Internet :: WWW/HTTP',
    'Topic :: Software Development :: Libraries :: Python Modules',
    'Topic :: System :: Systems Administration :: Authentication/Directory',
]


setup(
    name='python-hostedopenid',
    version=VERSION,
    description='Signed OpenID discovery for hosted domains.',
    long_description=LONG_DESCRIPTION,
    long_description_content_type='text/markdown',
    packages=['hostedopenid',
              'hostedopenid.consumer',
              'hostedopenid.store',
              'hostedopenid.yadis',
              ],
    python_requires='>=3.8',
    install_requires=INSTALL_REQUIRES,
    extras_require=EXTRAS_REQUIRE,
    # license specified by classifier.
    classifiers=CLASSIFIERS,
)
